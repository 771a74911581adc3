from calltrail.protocols.archive import Compressor, ExecutableLocator
from calltrail.protocols.storage import FileWriter

__all__ = [
    "Compressor",
    "ExecutableLocator",
    "FileWriter",
]
