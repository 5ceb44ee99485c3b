"""Transfer monitoring for the command line.

Modules
-------
transfer
    ``format_byte_count`` and ``TransferMonitor``, an upload progress sink
    drawn as a rich progress bar.
"""

from charmrepo.monitor.transfer import TransferMonitor, format_byte_count

__all__ = ["TransferMonitor", "format_byte_count"]
