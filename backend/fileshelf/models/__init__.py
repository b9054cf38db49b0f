from fileshelf.models.user import User, UserRole  # noqa: F401
from fileshelf.models.file import FileLifecycle, FileRecord  # noqa: F401
from fileshelf.models.token import PasswordResetToken, TokenType  # noqa: F401
