import os
from dotenv import load_dotenv

# Muat variabel dari file .env (untuk di laptop)
load_dotenv()


def _env_bool(key, default=False):
    raw = os.environ.get(key)
    if raw is None:
        return default
    return raw.strip().lower() in ('1', 'true', 'yes', 'on')


class Config:
    # 1. SECRET KEY
    # Tambahkan 'or ...' sebagai cadangan agar tidak error jika lupa set env
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'kunci-rahasia-default-jika-lupa'

    # 2. DATABASE CONFIGURATION
    db_uri = os.environ.get('DATABASE_URL')

    # Render sering memberikan URL 'postgres://', tapi SQLAlchemy butuh 'postgresql://'
    if db_uri and db_uri.startswith("postgres://"):
        db_uri = db_uri.replace("postgres://", "postgresql://", 1)

    # Jika db_uri kosong (misal di laptop belum setting), otomatis pakai SQLite
    SQLALCHEMY_DATABASE_URI = db_uri or 'sqlite:///pesantren_lokal.db'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # 3. NAIK KELAS
    # Ukuran batch & jeda antar batch: satu-satunya rem tekanan ke connection pool
    PROMOTION_BATCH_SIZE = int(os.environ.get('PROMOTION_BATCH_SIZE') or 5)
    PROMOTION_BATCH_DELAY_MS = int(os.environ.get('PROMOTION_BATCH_DELAY_MS') or 100)

    # 4. TOKEN API (Bearer)
    AUTH_TOKEN_MAX_AGE = int(os.environ.get('AUTH_TOKEN_MAX_AGE') or 60 * 60 * 24)

    # 5. MIDTRANS
    MIDTRANS_SERVER_KEY = os.environ.get('MIDTRANS_SERVER_KEY') or ''
    MIDTRANS_IS_PRODUCTION = _env_bool('MIDTRANS_IS_PRODUCTION')
    MIDTRANS_TIMEOUT = float(os.environ.get('MIDTRANS_TIMEOUT') or 10)

    # 6. LOGGING
    LOG_DIR = os.environ.get('LOG_DIR') or 'logs'
    LOG_TO_FILE = _env_bool('LOG_TO_FILE', default=True)
