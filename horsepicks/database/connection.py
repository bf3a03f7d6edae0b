import logging
import os

import psycopg2
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

logger = logging.getLogger(__name__)

DB_HOST = os.getenv('DB_HOST')
DB_NAME = os.getenv('DB_NAME')
DB_USER = os.getenv('DB_USER')
DB_PASS = os.getenv('DB_PASSWORD')
DB_PORT = os.getenv('DB_PORT', 5432)


def database_configured() -> bool:
    """True when credentials point at a database; otherwise the game runs in memory."""
    return bool(DB_NAME)


def get_db_connection():
    """
    Establishes and returns a new database connection,
    setting the schema search path and session timezone to UTC.
    Returns None when no database is configured or it cannot be reached.
    """
    if not database_configured():
        return None
    try:
        conn = psycopg2.connect(
            dbname=DB_NAME,
            user=DB_USER,
            password=DB_PASS,
            host=DB_HOST,
            port=DB_PORT,
            options="-c search_path=horsepicks,public -c timezone=UTC"
        )
        return conn
    except Exception as e:
        logger.error("Could not connect to the database: %s", e)
        return None


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    conn = get_db_connection()
    if conn:
        logger.info("Database connection successful!")
        conn.close()
    else:
        logger.info("Database connection failed.")
