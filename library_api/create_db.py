from .config import settings
from .database import Database

database = Database(settings.database_url, retry_delay=settings.connect_retry_delay, max_attempts=settings.connect_max_attempts)
database.connect()
database.create_all()
print('Database and tables created!')
