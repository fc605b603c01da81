"""Committed offset management for snapflow connectors.

Offsets are committed only after a snapshot completes, so a failed or
cancelled run leaves the previous offset in place and the next run starts
over from classification.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from snapflow.core.errors import OffsetStorageError
from snapflow.logging import get_logger
from snapflow.state.backends import StateBackend

logger = get_logger(__name__)

OFFSET_KEY_PREFIX = "offsets."


class OffsetManager:
    """Loads and commits the last offset of each connector."""

    def __init__(self, state_backend: StateBackend):
        """Initialize OffsetManager.

        Args:
            state_backend: Backend for state persistence
        """
        self.backend = state_backend
        logger.info("OffsetManager initialized")

    def get_state_key(self, connector: str) -> str:
        """Generate the state key for a connector.

        Args:
            connector: Connector name

        Returns:
            Unique state key for the connector
        """
        return f"{OFFSET_KEY_PREFIX}{connector}"

    def load_offset(self, connector: str) -> Optional[Dict[str, Any]]:
        """Get the last committed offset.

        Args:
            connector: Connector name

        Returns:
            The committed offset or None if nothing was committed yet
        """
        key = self.get_state_key(connector)

        try:
            offset = self.backend.get(key)
            logger.debug(f"Retrieved offset for {key}: {offset}")
            return offset

        except Exception as e:
            logger.error(f"Failed to get offset for {key}: {e}")
            raise OffsetStorageError(
                f"Failed to retrieve offset: {str(e)}", context={"connector": connector}
            ) from e

    def commit_offset(self, connector: str, offset: Dict[str, Any]) -> None:
        """Store a new offset atomically.

        Args:
            connector: Connector name
            offset: Serializable offset, as returned by ``OffsetContext.get_offset``
        """
        key = self.get_state_key(connector)

        try:
            with self.backend.transaction():
                self.backend.set(key, offset, datetime.utcnow())
                logger.info(f"Committed offset for {key}: {offset}")

        except Exception as e:
            logger.error(f"Failed to commit offset for {key}: {e}")
            raise OffsetStorageError(
                f"Failed to commit offset: {str(e)}", context={"connector": connector}
            ) from e

    def reset_offset(self, connector: str) -> bool:
        """Forget the committed offset, forcing a new snapshot.

        Args:
            connector: Connector name

        Returns:
            True if an offset existed and was deleted, False otherwise
        """
        key = self.get_state_key(connector)

        try:
            deleted = self.backend.delete(key)
            if deleted:
                logger.info(f"Reset offset for {key}")
            else:
                logger.debug(f"No offset found to reset for {key}")
            return deleted

        except Exception as e:
            logger.error(f"Failed to reset offset for {key}: {e}")
            raise OffsetStorageError(
                f"Failed to reset offset: {str(e)}", context={"connector": connector}
            ) from e

    def list_connectors(self) -> List[str]:
        """Names of all connectors with a committed offset."""
        try:
            return [
                key[len(OFFSET_KEY_PREFIX) :]
                for key in self.backend.keys(OFFSET_KEY_PREFIX)
            ]
        except Exception as e:
            logger.error(f"Failed to list offsets: {e}")
            raise OffsetStorageError(f"Failed to list offsets: {str(e)}") from e

    def close(self) -> None:
        """Close the offset manager and clean up resources."""
        try:
            self.backend.close()
            logger.info("OffsetManager closed")

        except Exception as e:
            logger.error(f"Error closing OffsetManager: {e}")
            # Don't raise exception during cleanup
