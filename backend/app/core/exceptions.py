"""
Error taxonomy untuk akses database project (target eksternal).

Router yang mengubah exception ini jadi HTTPException, bukan layer system.
"""


class DatabaseError(Exception):
    """Base semua error yang berasal dari database target."""

    public_message = "Database error"

    def __init__(self, message: str = None):
        super().__init__(message or self.public_message)
        self.message = message or self.public_message


class NoDatabaseConfigured(DatabaseError):
    public_message = "No database configured"


class ConnectionFailure(DatabaseError):
    """Gagal connect. Hanya membawa kategori yang sudah disanitasi."""

    public_message = "Database connection failed"

    def __init__(self, category: str = None):
        super().__init__(category or self.public_message)
        self.category = self.message


class TableNotFound(DatabaseError):
    public_message = "Table not found"

    def __init__(self, table: str = None):
        super().__init__(self.public_message)
        self.table = table


class RecordNotFound(DatabaseError):
    public_message = "Record not found"


class ValidationRejected(DatabaseError):
    public_message = "Invalid request"


class RecordWriteError(DatabaseError):
    """
    Statement UPDATE gagal di sisi database.

    `message` aman buat user, `detail` cuma buat log operator.
    """

    public_message = "Update failed"

    def __init__(self, detail: str = None):
        super().__init__(self.public_message)
        self.detail = detail
