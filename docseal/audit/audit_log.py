from docseal.audit.base import AuditEntry, BaseAuditSink
from docseal.config.settings import Settings
from docseal.database.connection import get_connection
from docseal.logging.logger import Log


class PostgresAuditSink(BaseAuditSink):
    """Writes entries to the audit_logs table."""

    def log(self, entry: AuditEntry) -> None:
        with get_connection() as conn:
            conn.execute(
                """
                INSERT INTO audit_logs
                    (action, actor_id, target_id, description, ip_address, user_agent)
                VALUES (%s, %s, %s, %s, %s, %s)
                """,
                (
                    entry.action,
                    entry.actor_id,
                    entry.target_id,
                    entry.description,
                    entry.ip_address,
                    entry.user_agent,
                ),
            )
            conn.commit()


class LogAuditSink(BaseAuditSink):
    """Writes entries to the application log only."""

    def log(self, entry: AuditEntry) -> None:
        Log.info(
            f"AUDIT {entry.action} actor={entry.actor_id} target={entry.target_id}: "
            f"{entry.description}"
        )


class AuditTrail:
    """Fire-and-forget front for an audit sink.

    A failing sink is logged as a warning and never fails the operation
    being audited.
    """

    def __init__(self, sink: BaseAuditSink) -> None:
        self._sink = sink

    def record(
        self,
        action: str,
        description: str,
        *,
        actor_id: str | None = None,
        target_id: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
    ) -> None:
        entry = AuditEntry(
            action=action,
            description=description,
            actor_id=actor_id,
            target_id=target_id,
            ip_address=ip_address,
            user_agent=user_agent,
        )
        try:
            self._sink.log(entry)
        except Exception as exc:
            Log.warning(f"Audit entry {action} for {target_id} was not recorded: {exc}")


class AuditSinkFactory:
    """Creates the configured audit sink."""

    ADAPTERS: dict[str, type[BaseAuditSink]] = {
        "postgres": PostgresAuditSink,
        "log": LogAuditSink,
    }

    @classmethod
    def create(cls, settings: Settings) -> BaseAuditSink:
        backend = settings.audit_backend.lower()
        adapter_cls = cls.ADAPTERS.get(backend)
        if adapter_cls is None:
            raise ValueError(
                f"Unknown audit backend '{backend}'. Choose from: {list(cls.ADAPTERS)}"
            )
        return adapter_cls()
