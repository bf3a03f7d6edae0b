import logging
from pathlib import Path

from horsepicks.database.connection import get_db_connection

logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

SCHEMA_PATH = Path(__file__).resolve().parent / 'horsepicks' / 'database' / 'schema.sql'


def initialize_database():
    """
    Reads the schema.sql file and executes it to create the database tables.
    This is a RESET script: it will DROP the 'horsepicks' schema if it exists
    and create it fresh from the schema.sql file.
    """
    try:
        sql_commands = SCHEMA_PATH.read_text(encoding='utf-8')
    except FileNotFoundError:
        logger.error("schema.sql not found at %s", SCHEMA_PATH)
        return

    conn = get_db_connection()
    if conn is None:
        logger.error("Failed to get database connection. Are DB_* variables set?")
        return

    try:
        # DROP SCHEMA can't run inside a transaction block.
        conn.autocommit = True
        with conn.cursor() as cur:
            logger.info("Dropping existing 'horsepicks' schema (if it exists)...")
            cur.execute("DROP SCHEMA IF EXISTS horsepicks CASCADE;")
        conn.autocommit = False

        with conn.cursor() as cur:
            logger.info("Creating new 'horsepicks' schema and tables...")
            cur.execute(sql_commands)
        conn.commit()
        logger.info("All changes committed to the database.")
    except Exception as e:
        conn.rollback()
        logger.error("An error occurred. Transaction rolled back. Details: %s", e)
    finally:
        conn.close()
        logger.info("Database connection closed.")


if __name__ == '__main__':
    print("This script will RESET your 'horsepicks' database schema.")
    print("WARNING: All existing accounts, stats and match history will be WIPED.")
    response = input("Are you sure you want to continue? (y/n): ")

    if response.lower() == 'y':
        initialize_database()
    else:
        print("Database initialization cancelled.")
