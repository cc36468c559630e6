import logging
import time
from typing import Callable, Dict, Optional

from src.models.session import SessionContext

from .engine import ReflectionWizard

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 2 * 60 * 60


class WizardNotFound(KeyError):
    """No wizard with the given id is active."""
    pass


class WizardRegistry:
    """
    In-memory wizards for the running process, keyed by wizard id.

    A wizard not touched for `ttl_seconds` is dropped. Expired wizards are
    swept on every `create` and `get`; a lookup of an expired id raises
    WizardNotFound like an unknown one.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS, clock: Callable[[], float] = time.monotonic):
        if ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._wizards: Dict[str, ReflectionWizard] = {}
        self._touched: Dict[str, float] = {}

    def create(self, session: Optional[SessionContext] = None) -> ReflectionWizard:
        self._sweep()
        wizard = ReflectionWizard.for_session(session) if session is not None else ReflectionWizard()
        self._wizards[wizard.wizard_id] = wizard
        self._touched[wizard.wizard_id] = self._clock()
        logger.info(f"Wizard {wizard.wizard_id} created at step {wizard.step.value}", extra={"wizard_id": wizard.wizard_id})
        return wizard

    def get(self, wizard_id: str) -> ReflectionWizard:
        self._sweep()
        try:
            wizard = self._wizards[wizard_id]
        except KeyError:
            raise WizardNotFound(wizard_id) from None
        self._touched[wizard_id] = self._clock()
        return wizard

    def discard(self, wizard_id: str) -> None:
        self._wizards.pop(wizard_id, None)
        self._touched.pop(wizard_id, None)

    def _sweep(self) -> None:
        cutoff = self._clock() - self.ttl_seconds
        # a save in flight keeps its wizard alive
        expired = [
            wizard_id for wizard_id, touched in self._touched.items()
            if touched < cutoff and not self._wizards[wizard_id].is_saving
        ]
        for wizard_id in expired:
            self.discard(wizard_id)
        if expired:
            logger.info(f"Dropped {len(expired)} idle wizard(s); {len(self._wizards)} remain")

    def __len__(self) -> int:
        return len(self._wizards)
