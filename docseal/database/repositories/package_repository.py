import uuid
from collections.abc import Sequence
from dataclasses import replace
from typing import Any

from psycopg.rows import dict_row

from docseal.database.connection import get_connection
from docseal.database.models import (
    DOCUMENT_COMPLETED,
    DocumentRecord,
    DocumentVersionRecord,
    PackageDocumentRecord,
    PackageRecord,
    SignatureRecord,
)
from docseal.database.repositories.base import BasePackageRepository
from docseal.database.repositories.document_repository import write_signed_version
from docseal.exceptions import NotFoundError

_PACKAGE_COLUMNS = "id, owner_id, title, status, created_at, updated_at"

_ENTRY_SELECT = """
    SELECT pd.id, pd.package_id, pd.document_version_id, pd.position, dv.document_id
    FROM package_documents pd
    JOIN document_versions dv ON dv.id = pd.document_version_id
"""


def _to_package(row: dict[str, Any]) -> PackageRecord:
    return PackageRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        title=row["title"],
        status=row["status"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


def _to_entry(row: dict[str, Any]) -> PackageDocumentRecord:
    return PackageDocumentRecord(
        id=row["id"],
        package_id=row["package_id"],
        document_version_id=row["document_version_id"],
        document_id=row["document_id"],
        position=row["position"],
    )


class PackageRepository(BasePackageRepository):
    """Database operations for the signing_packages and package_documents tables."""

    def create_with_documents(
        self, package: PackageRecord, version_ids: Sequence[str]
    ) -> PackageRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO signing_packages (id, owner_id, title, status)
                    VALUES (%s, %s, %s, %s)
                    RETURNING {_PACKAGE_COLUMNS}
                    """,
                    (package.id, package.owner_id, package.title, package.status),
                )
                row = cur.fetchone()
                for position, version_id in enumerate(version_ids):
                    cur.execute(
                        """
                        INSERT INTO package_documents
                            (id, package_id, document_version_id, position)
                        VALUES (%s, %s, %s, %s)
                        """,
                        (str(uuid.uuid4()), package.id, version_id, position),
                    )
            conn.commit()

        return _to_package(row)

    def find_by_id(self, package_id: str, owner_id: str) -> PackageRecord:
        """Find a package owned by owner_id.

        Raises:
            NotFoundError: if the package does not exist or has another owner.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_PACKAGE_COLUMNS}
                    FROM signing_packages
                    WHERE id = %s AND owner_id = %s
                    """,
                    (package_id, owner_id),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"Package {package_id} not found")
        return _to_package(row)

    def find_documents(self, package_id: str) -> list[PackageDocumentRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"{_ENTRY_SELECT} WHERE pd.package_id = %s ORDER BY pd.position",
                    (package_id,),
                )
                rows = cur.fetchall()

        return [_to_entry(row) for row in rows]

    def find_document_by_version(self, version_id: str) -> PackageDocumentRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"{_ENTRY_SELECT} WHERE pd.document_version_id = %s LIMIT 1",
                    (version_id,),
                )
                row = cur.fetchone()

        if row is None:
            return None
        return _to_entry(row)

    def record_signed_document(
        self,
        package_document_id: str,
        version: DocumentVersionRecord,
        signatures: Sequence[SignatureRecord],
        *,
        signed_file_ref: str,
    ) -> tuple[DocumentRecord, DocumentVersionRecord]:
        """Seal one package entry in a single transaction.

        Raises:
            NotFoundError: if the document or the entry does not exist.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                document, created_at = write_signed_version(
                    cur,
                    version,
                    signatures,
                    status=DOCUMENT_COMPLETED,
                    signed_file_ref=signed_file_ref,
                )
                cur.execute(
                    """
                    UPDATE package_documents
                    SET document_version_id = %s
                    WHERE id = %s
                    """,
                    (version.id, package_document_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Package entry {package_document_id} not found")
            conn.commit()

        return document, replace(version, created_at=created_at)

    def update_status(self, package_id: str, status: str) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE signing_packages
                    SET status = %s, updated_at = NOW()
                    WHERE id = %s
                    """,
                    (status, package_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Package {package_id} not found")
            conn.commit()
