"""Import wizard state machine.

The wizard walks SOURCE -> AUTH -> MAPPING -> IMPORT. Forward moves are
looked up in an explicit transition table and gated by a guard; backward
moves are always allowed until the import starts. IMPORT is terminal.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

from ..errors import EmptyCredentialError, MappingValidationError, WizardError
from ..logging_utils import forget_secret, register_secret
from ..models.config import ImportConfig
from ..models.job import ImportJob
from ..models.mapping import FieldMapping, MappingRule
from ..models.provider import ProviderDescriptor, ProviderId
from ..models.state import ImportState, WizardStep
from .auth_validator import AuthValidator, ValidatedCredential
from .executor import ImportExecutor, ProgressCallback
from .field_mapper import FieldMapper
from .source_registry import SourceRegistry

logger = logging.getLogger(__name__)

StepListener = Callable[[WizardStep, WizardStep], Any]


@dataclass(frozen=True)
class Transition:
    """One row of the wizard transition table."""
    source: WizardStep
    target: WizardStep
    guard: Optional[Callable[["WizardController"], Awaitable[None]]] = None


async def _require_source(wizard: "WizardController") -> None:
    if wizard.state.source is None:
        raise WizardError("Select a source before continuing")


async def _require_valid_credential(wizard: "WizardController") -> None:
    await wizard.validate_credential()


async def _require_valid_mapping(wizard: "WizardController") -> None:
    errors = wizard.field_mapper.validate(wizard.state.mappings)
    if errors:
        raise MappingValidationError(errors)


FORWARD_TRANSITIONS = (
    Transition(WizardStep.SOURCE, WizardStep.AUTH, _require_source),
    Transition(WizardStep.AUTH, WizardStep.MAPPING, _require_valid_credential),
    Transition(WizardStep.MAPPING, WizardStep.IMPORT, _require_valid_mapping),
)

BACKWARD_TRANSITIONS = (
    Transition(WizardStep.AUTH, WizardStep.SOURCE),
    Transition(WizardStep.MAPPING, WizardStep.AUTH),
)


class WizardController:
    """
    Orchestrates one import wizard session.

    Owns the transient ImportState. Recoverable errors (bad credential,
    incomplete mapping) block the transition and leave entered data intact.
    """

    def __init__(
        self,
        registry: Optional[SourceRegistry] = None,
        validator: Optional[AuthValidator] = None,
        field_mapper: Optional[FieldMapper] = None,
        executor: Optional[ImportExecutor] = None,
        sink: Any = None,
        config: Optional[ImportConfig] = None,
        on_progress: Optional[ProgressCallback] = None
    ):
        """
        Initialize the wizard.

        Args:
            registry: Provider catalog
            validator: Credential validator
            field_mapper: Mapping builder/validator
            executor: Executor that runs the import on entering IMPORT
            sink: Task store the import commits to
            config: Import configuration (used for defaults of the above)
            on_progress: Progress callback forwarded to the executor
        """
        self.config = config or ImportConfig()
        self.registry = registry or SourceRegistry()
        self.validator = validator or AuthValidator(
            timeout=self.config.request_timeout,
            provider_options=self.config.provider_options,
        )
        self.field_mapper = field_mapper or FieldMapper()
        self.executor = executor or ImportExecutor(self.config, field_mapper=self.field_mapper)
        self.sink = sink
        self.on_progress = on_progress

        self.state: Optional[ImportState] = ImportState()
        self.options: Dict[str, Any] = {}
        self._validated: Optional[ValidatedCredential] = None
        self._listeners: List[StepListener] = []
        self._import_task: Optional[asyncio.Task] = None

    # State access

    @property
    def current_step(self) -> WizardStep:
        return self._require_state().current_step

    @property
    def is_closed(self) -> bool:
        return self.state is None

    @property
    def import_started(self) -> bool:
        return self._import_task is not None

    @property
    def import_task(self) -> Optional[asyncio.Task]:
        """The running import, once IMPORT has been entered."""
        return self._import_task

    @property
    def job(self) -> Optional[ImportJob]:
        """The live import job, once the executor has created it."""
        return self.executor.job if self._import_task is not None else None

    @property
    def validated_credential(self) -> Optional[ValidatedCredential]:
        return self._validated

    def _require_state(self) -> ImportState:
        if self.state is None:
            raise WizardError("Wizard session is closed")
        return self.state

    def _require_editable(self) -> ImportState:
        state = self._require_state()
        if self.import_started:
            raise WizardError("Import already started; the session can no longer be edited")
        return state

    # Listeners

    def on_step_change(self, listener: StepListener) -> None:
        """Register a listener called as listener(previous, current) on every step change."""
        self._listeners.append(listener)

    def _emit(self, previous: WizardStep, current: WizardStep) -> None:
        logger.info(f"Wizard step {previous.label} -> {current.label}")
        for listener in self._listeners:
            try:
                listener(previous, current)
            except Exception as e:
                logger.warning(f"Step listener failed: {e}")

    # Data entry

    def select_source(self, provider_id: Union[ProviderId, str], **options: Any) -> ProviderDescriptor:
        """
        Select the provider to import from.

        Changing the source invalidates any prior credential validation and
        discards a mapping seeded for the previous source. Changing only the
        connection options (e.g. another Jira site) invalidates the
        validation but keeps the mapping.
        """
        state = self._require_editable()
        descriptor = self.registry.describe(provider_id)

        if state.source is None or state.source.id != descriptor.id:
            state.mappings = {}
            self._validated = None
        elif dict(options) != self.options:
            self._validated = None
        state.source = descriptor
        self.options = dict(options)
        logger.info(f"Selected source {descriptor.display_name}")
        return descriptor

    def set_credential(self, credential: str) -> None:
        """Set the credential; a changed credential must be validated again."""
        state = self._require_editable()
        credential = credential or ""
        if credential == state.credential:
            return
        self._validated = None
        forget_secret(state.credential)
        state.credential = credential
        register_secret(state.credential)

    def set_rule(self, rule: MappingRule) -> None:
        state = self._require_editable()
        state.mappings[rule.source_field] = rule

    def remove_rule(self, source_field: str) -> None:
        state = self._require_editable()
        state.mappings.pop(source_field, None)

    def set_mapping(self, mapping: FieldMapping) -> None:
        state = self._require_editable()
        state.mappings = dict(mapping)

    async def validate_credential(self) -> ValidatedCredential:
        """
        Validate the current (source, credential) pair.

        A cached result is reused while neither the source nor the
        credential has changed.

        Raises:
            WizardError: No source selected
            AuthError: The credential is empty, rejected or unverifiable
        """
        state = self._require_state()
        if state.source is None:
            raise WizardError("Select a source before validating a credential")

        if self._validated is not None and self._validated.matches(state.source, state.credential):
            return self._validated

        if state.source.requires_network and not state.credential.strip():
            raise EmptyCredentialError()

        self._validated = await self.validator.validate(state.source, state.credential, self.options)
        return self._validated

    # Transitions

    async def next(self) -> WizardStep:
        """
        Advance one step after running the transition's guard.

        Returns:
            The new current step

        Raises:
            WizardError: Session closed, import started, or no forward transition
            AuthError: Credential gate failed
            MappingValidationError: Mapping gate failed
        """
        state = self._require_editable()
        transition = self._find(FORWARD_TRANSITIONS, state.current_step)
        if transition is None:
            raise WizardError(f"No step after {state.current_step.label}")

        if transition.guard is not None:
            await transition.guard(self)
        if transition.target == WizardStep.IMPORT and self.sink is None:
            raise WizardError("No task store configured for the import")

        previous = state.current_step
        state.current_step = transition.target

        if transition.target == WizardStep.MAPPING and not state.mappings:
            state.mappings = self.field_mapper.build_default_mapping(state.source)
        if transition.target == WizardStep.IMPORT:
            self._start_import()

        self._emit(previous, transition.target)
        return transition.target

    def back(self) -> WizardStep:
        """Go back one step, keeping all entered data."""
        state = self._require_editable()
        transition = self._find(BACKWARD_TRANSITIONS, state.current_step)
        if transition is None:
            raise WizardError(f"Cannot go back from {state.current_step.label}")

        previous = state.current_step
        state.current_step = transition.target
        self._emit(previous, transition.target)
        return transition.target

    def close(self) -> None:
        """
        Close the session.

        Before IMPORT this discards the state with no side effects. A job
        that has already started keeps running.
        """
        if self.state is None:
            return
        # A running import holds its own registration of the credential
        forget_secret(self.state.credential)
        logger.info("Wizard closed")
        self.state = None
        self._validated = None

    def cancel_import(self) -> None:
        """Ask the running import to stop at the next record or page boundary."""
        if not self.import_started:
            raise WizardError("No import is running")
        self.executor.cancel()

    async def wait(self) -> ImportJob:
        """Wait for the running import to finish and return its job."""
        if self._import_task is None:
            raise WizardError("No import is running")
        return await self._import_task

    @staticmethod
    def _find(table, step: WizardStep) -> Optional[Transition]:
        for transition in table:
            if transition.source == step:
                return transition
        return None

    def _start_import(self) -> None:
        state = self._require_state()
        credential = self._validated or state.credential
        self._import_task = asyncio.ensure_future(self.executor.run(
            state.source,
            credential,
            dict(state.mappings),
            self.sink,
            on_progress=self.on_progress,
            options=self.options,
        ))
        logger.info(f"Import from {state.source.display_name} started")
