from __future__ import annotations

import logging
from typing import Callable

from fastapi import Request
from pymongo import MongoClient
from pymongo.database import Database


logger = logging.getLogger(__name__)


IndexInitializer = Callable[[Database], None]


class MongoStorage:
    """프로세스당 한 번 생성해서 요청 간에 재사용하는 MongoDB 핸들.

    - connect() 에서 주어진 URI 로 접속하고 ping 으로 연결을 검증한다.
    - db_name 도 없고 URI 에 기본 데이터베이스도 없으면 에러를 발생시킨다.
    - 서비스가 넘겨준 인덱스 초기화 함수를 한 번만 실행한다.
    - close() 는 애플리케이션 종료 시 한 번 호출한다.
    """

    def __init__(
        self,
        uri: str,
        db_name: str | None = None,
        ensure_indexes: IndexInitializer | None = None,
    ) -> None:
        self._uri = uri
        self._db_name = db_name
        self._ensure_indexes = ensure_indexes
        self._client: MongoClient | None = None
        self._db: Database | None = None

    @property
    def client(self) -> MongoClient:
        if self._client is None:
            raise RuntimeError("MongoStorage is not connected")
        return self._client

    @property
    def database(self) -> Database:
        if self._db is None:
            raise RuntimeError("MongoStorage is not connected")
        return self._db

    def connect(self) -> "MongoStorage":
        if self._client is not None:
            return self

        client: MongoClient = MongoClient(self._uri, tz_aware=True)

        try:
            client.admin.command("ping")
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(f"failed to connect to MongoDB: {exc}") from exc

        # 사용할 DB 이름 결정: 명시값 > URI 의 기본 DB
        try:
            if self._db_name:
                db = client[self._db_name]
            else:
                db = client.get_default_database()
        except Exception as exc:  # noqa: BLE001
            client.close()
            raise RuntimeError(
                "MongoDB database name must be specified via MONGO_DB_NAME or in MONGO_URI (mongodb://.../db_name)",
            ) from exc

        if self._ensure_indexes is not None:
            try:
                self._ensure_indexes(db)
            except Exception as exc:  # noqa: BLE001
                # 인덱스 생성 실패는 치명적 오류로 간주한다.
                logger.error("failed to ensure MongoDB indexes: %s", exc)
                client.close()
                raise

        self._client = client
        self._db = db
        logger.info("MongoDB connected and indexes ensured (db=%s)", db.name)
        return self

    def close(self) -> None:
        if self._client is None:
            return
        self._client.close()
        self._client = None
        self._db = None
        logger.info("MongoDB connection closed")


def get_storage(request: Request) -> MongoStorage:
    """FastAPI DI용: lifespan 에서 app.state 에 올려둔 MongoStorage 를 반환한다."""

    storage = getattr(request.app.state, "storage", None)
    if storage is None:
        raise RuntimeError("MongoStorage has not been initialized on app.state")
    return storage


def get_database(request: Request) -> Database:
    """FastAPI DI용 기본 Database 객체."""

    return get_storage(request).database
