"""
ドキュメントメタデータのストア（JSONファイルベース永続化）

1ドキュメント = 1ファイル（{documents_dir}/{document_id}.json）
中身: id, filename, format, uploaded_at, topic_id, topic_title

DocumentMetadataStore Protocol に準拠（get_by_ids）
"""
import asyncio
import json
import logging
import re
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

from app.rag.base import DocumentRecord

# ロガー設定
logger = logging.getLogger(__name__)

# ファイル名に使えるID（パス区切りなどを含まない）
SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_.\-]+$")


class JsonDocumentStore:
    """ドキュメントのメタデータをJSONファイルで保存・取得する"""

    def __init__(self, store_dir: str | Path):
        store_dir = Path(store_dir)
        if not store_dir.is_absolute():
            # リポジトリルート（backend/app/docs/store.py から見て ../../..）
            repo_root = Path(__file__).resolve().parent.parent.parent.parent
            store_dir = repo_root / store_dir
        self.store_dir = store_dir

    @classmethod
    def from_settings(cls, settings) -> "JsonDocumentStore":
        return cls(settings.documents_dir)

    def _path(self, document_id: str) -> Optional[Path]:
        if not SAFE_ID_PATTERN.match(document_id):
            logger.warning(f"不正なドキュメントIDのため無視します: {document_id!r}")
            return None
        return self.store_dir / f"{document_id}.json"

    def save(self, record: DocumentRecord) -> None:
        """
        メタデータを保存（同じIDは上書き）

        uploaded_at が未指定なら現在時刻（UTC）を入れる

        Raises:
            ValueError: ファイル名に使えないID
        """
        path = self._path(record.id)
        if path is None:
            raise ValueError(f"ファイル名に使えないドキュメントIDです: {record.id}")

        data = asdict(record)
        if not data.get("uploaded_at"):
            data["uploaded_at"] = datetime.utcnow().isoformat() + "Z"

        self.store_dir.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            json.dump(data, f, ensure_ascii=False, indent=2)
        logger.info(f"ドキュメント情報を保存: {record.id} -> {path}")

    def load(self, document_id: str) -> Optional[DocumentRecord]:
        """1件読み込む（無い・壊れている場合はNone）"""
        path = self._path(document_id)
        if path is None or not path.exists():
            return None

        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"ドキュメント情報の読み込みに失敗: {document_id}: {e}")
            return None

        return DocumentRecord(
            id=data.get("id", document_id),
            filename=data.get("filename", ""),
            format=data.get("format"),
            uploaded_at=data.get("uploaded_at"),
            topic_id=data.get("topic_id"),
            topic_title=data.get("topic_title"),
        )

    def _load_many(self, document_ids: List[str]) -> List[DocumentRecord]:
        records: Dict[str, DocumentRecord] = {}
        for document_id in document_ids:
            if document_id in records:
                continue
            record = self.load(document_id)
            if record is not None:
                records[document_id] = record
        return list(records.values())

    async def get_by_ids(self, document_ids: List[str]) -> List[DocumentRecord]:
        """存在するIDのレコードのみ返す"""
        return await asyncio.to_thread(self._load_many, list(document_ids))
