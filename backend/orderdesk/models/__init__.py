
from .tenancy import Company
from .auth import User, SessionToken
from .security import SecurityEvent
from .catalog import Product, Mall, HeaderAlias
from .uploads import UploadTemplate, StagedFile, Upload, OrderRow, InternalCodeCounter

__all__ = [
    'Company',
    'User', 'SessionToken', 'SecurityEvent',
    'Product', 'Mall', 'HeaderAlias',
    'UploadTemplate', 'StagedFile', 'Upload', 'OrderRow', 'InternalCodeCounter',
]
