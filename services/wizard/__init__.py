# Step-by-step wizard that collects a reflection profile.

from .engine import ReflectionWizard
from .models import Step, TopThreePhase, WizardError, TransitionBlocked, InvalidWizardInput, WizardState
from .registry import WizardRegistry, WizardNotFound

__all__ = [
    "ReflectionWizard",
    "Step",
    "TopThreePhase",
    "WizardError",
    "TransitionBlocked",
    "InvalidWizardInput",
    "WizardState",
    "WizardRegistry",
    "WizardNotFound",
]
