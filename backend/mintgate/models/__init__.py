from .items import ItemOverride
from .allowlist import AllowlistUpload, AllowlistEntry
from .mints import MintRecord
from .chain import ChainSnapshot
from .currencies import Currency

__all__ = [
    'ItemOverride',
    'AllowlistUpload', 'AllowlistEntry',
    'MintRecord',
    'ChainSnapshot',
    'Currency',
]
