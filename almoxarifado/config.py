import os


def _database_url():
    db_url = os.getenv("DATABASE_URL")
    if not db_url:
        return "sqlite:///almoxarifado.db"
    if db_url.startswith("postgres://"):
        db_url = db_url.replace("postgres://", "postgresql+psycopg://", 1)
    return db_url


class Config:
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret")
    SQLALCHEMY_DATABASE_URI = _database_url()
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    # estoque
    CLIENT_WAREHOUSES = int(os.getenv("CLIENT_WAREHOUSES", "5"))
    STOCK_MAX_RETRIES = int(os.getenv("STOCK_MAX_RETRIES", "3"))
    STOCK_LOCK_TIMEOUT = float(os.getenv("STOCK_LOCK_TIMEOUT", "10"))

    # admin padrão
    ADMIN_LOGIN = os.getenv("ADMIN_LOGIN", "admin")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "123")


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite://"
    LOG_LEVEL = "DEBUG"
    STOCK_LOCK_TIMEOUT = 5.0
