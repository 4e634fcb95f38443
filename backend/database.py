import os
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.ext.declarative import declarative_base
from sqlalchemy.pool import StaticPool
from dotenv import load_dotenv

# .envファイルを読み込み
load_dotenv()

# 環境変数からデータベース接続情報を取得
DB_HOST = os.getenv("DB_HOST", "localhost")
DB_USER = os.getenv("DB_USER", "gallery_album_user")
DB_PASSWORD = os.getenv("DB_PASSWORD", "root")
DB_NAME = os.getenv("DB_NAME", "gallery_album")
DB_PORT = os.getenv("DB_PORT", "3306")

# DATABASE_URL が指定されていればそちらを優先（テストではSQLiteを使用）
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"mysql+pymysql://{DB_USER}:{DB_PASSWORD}@{DB_HOST}:{DB_PORT}/{DB_NAME}"
)

# SQLAlchemyエンジンの作成
if DATABASE_URL.startswith("sqlite"):
    # インメモリDBを全コネクションで共有するためStaticPoolを使用
    engine = create_engine(
        DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )

    @event.listens_for(engine, "connect")
    def _enable_sqlite_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()
else:
    engine = create_engine(DATABASE_URL, pool_pre_ping=True)

# セッションの作成
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# ベースクラス
Base = declarative_base()


def get_db():
    """リクエスト単位のDBセッションを提供する（dependency injection用）"""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
