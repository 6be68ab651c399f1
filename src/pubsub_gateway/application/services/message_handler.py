"""
Inbound Message Handler

Shared routine invoked by topic consumers and queue flows for every
delivered message:

- Text message → appended to the delivery cache as-is
- Attachment with FILE_NAME → written under the received-files directory,
  then a confirmation line is appended
- Attachment without FILE_NAME → dropped with a warning
- Anything else → ignored

Runs on transport callback threads and never raises.

Author: System Architect
Date: 2025-12-10
"""

from pathlib import Path, PurePath

from pubsub_gateway.application.services.delivery_cache import DeliveryCache
from pubsub_gateway.core.config.constants import PROPERTY_FILE_NAME, DestinationKind
from pubsub_gateway.core.exceptions.delivery import AttachmentHandlingError
from pubsub_gateway.core.interfaces.storage import FileStore
from pubsub_gateway.core.interfaces.transport import BrokerMessage
from pubsub_gateway.core.logging.logger import get_logger
from pubsub_gateway.infrastructure.monitoring.metrics_collector import (
    MetricsCollector,
    get_metrics_collector,
)

logger = get_logger(__name__)


def file_received_confirmation(file_name: str, path: Path) -> str:
    return f"File '{file_name}' received and saved to: {path.resolve()}"


class MessageHandler:
    """Turns inbound broker messages into delivery cache entries."""

    def __init__(
        self,
        cache: DeliveryCache,
        file_store: FileStore,
        received_dir: str | Path,
        metrics: MetricsCollector | None = None,
    ):
        self._cache = cache
        self._file_store = file_store
        self._received_dir = Path(received_dir)
        self._metrics = metrics or get_metrics_collector()

    @property
    def received_dir(self) -> Path:
        return self._received_dir

    def handle(self, message: BrokerMessage, kind: DestinationKind, destination: str) -> bool:
        """
        Process one delivered message.

        STAGE-DLV.1: Delivery

        Returns:
            True if something was appended to the cache
        """
        if message.is_text:
            self._cache.append(kind, destination, message.text)
            self._metrics.record_delivery(kind.value, "text")
            logger.debug("Text message cached", stage="DLV.1", kind=kind.value, destination=destination)
            return True

        if message.has_attachment:
            return self._handle_attachment(message, kind, destination)

        logger.debug(
            "Message without text or attachment ignored",
            stage="DLV.1",
            kind=kind.value,
            destination=destination,
            message_id=message.message_id
        )
        self._metrics.record_dropped_message(kind.value, "unsupported_body")
        return False

    def _handle_attachment(self, message: BrokerMessage, kind: DestinationKind, destination: str) -> bool:
        raw_name = message.properties.get(PROPERTY_FILE_NAME)
        if not raw_name:
            logger.warning(
                "Attachment without file name dropped",
                stage="DLV.1.1",
                kind=kind.value,
                destination=destination,
                message_id=message.message_id
            )
            self._metrics.record_dropped_message(kind.value, "missing_file_name")
            return False

        file_name = PurePath(str(raw_name).replace("\\", "/")).name
        if file_name in ("", ".", ".."):
            logger.warning(
                "Attachment with unusable file name dropped",
                stage="DLV.1.1",
                kind=kind.value,
                destination=destination,
                file_name=str(raw_name)
            )
            self._metrics.record_dropped_message(kind.value, "invalid_file_name")
            return False

        output_path = self._received_dir / file_name
        try:
            self._store(output_path, message.attachment)
        except AttachmentHandlingError as e:
            logger.error(
                "Failed to save received file",
                stage="DLV.1.2",
                kind=kind.value,
                destination=destination,
                error=e.message,
                details=e.details
            )
            self._metrics.record_dropped_message(kind.value, "io_error")
            self._metrics.record_error(type(e).__name__, "DLV.1.2")
            return False

        self._cache.append(kind, destination, file_received_confirmation(file_name, output_path))
        self._metrics.record_delivery(kind.value, "file")
        logger.info(
            "File received",
            stage="DLV.1",
            kind=kind.value,
            destination=destination,
            file_name=file_name,
            size=len(message.attachment)
        )
        return True

    def _store(self, path: Path, data: bytes) -> None:
        try:
            self._file_store.ensure_directory(path.parent)
            self._file_store.write_file(path, data)
        except (OSError, ValueError) as e:
            # ValueError: the name holds a character the filesystem rejects (NUL)
            raise AttachmentHandlingError.from_exception(
                e, message=f"Could not write {path.name}", path=str(path)
            ) from e
