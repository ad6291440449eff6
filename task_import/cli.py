"""Command line interface for the task import engine."""

import argparse
import asyncio
import getpass
import json
import logging
import os
import sys
from typing import Any, Dict, List, Optional

from .errors import AuthError, ImportEngineError, MappingValidationError
from .logging_utils import configure_logging
from .models.config import ImportConfig
from .models.job import ImportJob, JobError, JobStatus
from .models.mapping import (
    MappingRule,
    TransformSpec,
    TransformType,
    load_mapping_file,
    mapping_to_dict,
    save_mapping_file,
)
from .models.state import WizardStep
from .models.task import TARGET_SCHEMA
from .services.auth_validator import AuthValidator
from .services.executor import ImportExecutor
from .services.field_mapper import FieldMapper
from .services.source_registry import SourceRegistry
from .services.wizard import WizardController
from .store import JsonFileTaskStore

logger = logging.getLogger(__name__)

CREDENTIAL_ENV = "TASK_IMPORT_CREDENTIAL"


def _parse_options(pairs: Optional[List[str]]) -> Dict[str, str]:
    """Parse repeated --option key=value arguments."""
    options = {}
    for pair in pairs or []:
        if "=" not in pair:
            raise ValueError(f"Invalid option (expected key=value): {pair}")
        key, value = pair.split("=", 1)
        options[key.strip()] = value.strip()
    return options


def _load_config(args) -> ImportConfig:
    config = ImportConfig.from_json_file(args.config) if getattr(args, "config", None) else ImportConfig()
    return ImportConfig.from_env(config)


def _read_credential(args, prompt: str = "Credential: ") -> str:
    if getattr(args, "credential", None):
        return args.credential
    if os.environ.get(CREDENTIAL_ENV):
        return os.environ[CREDENTIAL_ENV]
    return getpass.getpass(prompt)


def _print_progress(processed: int, total: Optional[int], latest_error: Optional[JobError]) -> None:
    total_text = total if total is not None else "?"
    sys.stdout.write(f"\rImported {processed}/{total_text}")
    sys.stdout.flush()


def _print_job(job: ImportJob) -> None:
    print("\n" + "=" * 60)
    print("IMPORT COMPLETE")
    print("=" * 60)
    print(f"Status: {job.status.value}")
    print(f"Records Processed: {job.processed}")
    print(f"Imported: {job.committed}")
    print(f"Skipped: {job.failed_count}")
    if job.duration_seconds is not None:
        print(f"Duration: {job.duration_seconds:.2f} seconds")
    if job.terminal_error:
        print(f"Error: {job.terminal_error.reason}")
    for error in job.errors[:10]:
        print(f"  - {error.item_id}: {error.reason}")
    if len(job.errors) > 10:
        print(f"  ... and {len(job.errors) - 10} more")


class InteractiveWizardCLI:
    """
    Interactive terminal front end for the import wizard.

    Walks the user through source selection, authentication, field
    mapping and the import itself.
    """

    def __init__(self, wizard: WizardController, options: Optional[Dict[str, Any]] = None):
        """
        Initialize the interactive CLI.

        Args:
            wizard: Wizard controller driving the session
            options: Connection options passed along with the selected source
        """
        self.wizard = wizard
        self.options = options or {}

    def run(self) -> Optional[ImportJob]:
        """Run the interactive wizard loop."""
        print("\n" + "=" * 60)
        print("  Task Import Wizard")
        print("=" * 60)
        return asyncio.run(self._loop())

    async def _loop(self) -> Optional[ImportJob]:
        while True:
            step = self.wizard.current_step
            print(f"\n--- Step {int(step) + 1}/4: {step.label} ---")

            if step == WizardStep.SOURCE:
                if not self._choose_source():
                    self.wizard.close()
                    print("\nImport cancelled.")
                    return None
            elif step == WizardStep.AUTH:
                self.wizard.set_credential(getpass.getpass("Credential (leave empty to go back): "))
                if not self.wizard.state.credential and self.wizard.state.source.requires_network:
                    self.wizard.back()
                    continue
            elif step == WizardStep.MAPPING:
                if not self._edit_mapping():
                    self.wizard.back()
                    continue

            try:
                await self.wizard.next()
            except AuthError as e:
                print(f"Authentication failed: {e}")
                continue
            except MappingValidationError as e:
                print("Mapping is incomplete:")
                for error in e.errors:
                    print(f"  - {error}")
                continue

            if self.wizard.current_step == WizardStep.IMPORT:
                job = await self.wizard.wait()
                _print_job(job)
                return job

    def _choose_source(self) -> bool:
        providers = self.wizard.registry.list()
        for i, provider in enumerate(providers, 1):
            print(f"  {i}. {provider.display_name}")
        choice = input("Choose a source (q to quit): ").strip()
        if choice.lower() == "q":
            return False

        try:
            provider = providers[int(choice) - 1]
        except (ValueError, IndexError):
            print("Invalid choice")
            return True

        options = dict(self.options)
        if provider.doc_url:
            print(f"Get a token at: {provider.doc_url}")
        for name in self._required_options(provider.id.value):
            if name not in options:
                options[name] = input(f"{name}: ").strip()
        self.wizard.select_source(provider.id, **options)
        return True

    @staticmethod
    def _required_options(provider_id: str) -> List[str]:
        return {
            "jira": ["base_url"],
            "asana": ["project"],
            "trello": ["board"],
            "monday": ["board"],
            "csv": ["path"],
        }.get(provider_id, [])

    def _edit_mapping(self) -> bool:
        """Edit the mapping; returns False to go back a step."""
        while True:
            mappings = self.wizard.state.mappings
            print("\nCurrent field mappings:")
            for i, rule in enumerate(mappings.values(), 1):
                transform = rule.transform.type.value if isinstance(rule.transform, TransformSpec) else "direct"
                print(f"  {i}. {rule.source_field} -> {rule.target_field} ({transform})")

            print("\nOptions: (a)dd, (r)emove, (b)ack, (c)ontinue")
            action = input("Action: ").strip().lower()

            if action == "a":
                self._add_rule()
            elif action == "r":
                self._remove_rule()
            elif action == "b":
                return False
            elif action == "c":
                return True

    def _add_rule(self) -> None:
        source_field = input("Source field (e.g. status.name): ").strip()
        print("Target fields: " + ", ".join(f.value for f in TARGET_SCHEMA))
        target_field = input("Target field: ").strip()
        if not source_field or not target_field:
            print("Both fields are required")
            return

        print("Transforms: " + ", ".join(t.value for t in TransformType))
        transform_input = input("Transform [direct]: ").strip() or "direct"
        try:
            transform = TransformSpec(TransformType(transform_input))
        except ValueError:
            print(f"Unknown transform {transform_input}, using direct copy")
            transform = TransformSpec()

        if transform.type == TransformType.ENUM_MAP:
            print("Enter mappings (format: old=new, one per line, empty line to finish):")
            table = {}
            while True:
                line = input().strip()
                if not line:
                    break
                if "=" in line:
                    old, new = line.split("=", 1)
                    table[old.strip()] = new.strip()
            transform = TransformSpec.enum_map(table)

        self.wizard.set_rule(MappingRule(source_field, target_field, transform=transform))
        print(f"Added: {source_field} -> {target_field}")

    def _remove_rule(self) -> None:
        rules = list(self.wizard.state.mappings.values())
        idx = input("Enter mapping number to remove: ").strip()
        try:
            rule = rules[int(idx) - 1]
        except (ValueError, IndexError):
            print("Invalid number")
            return
        self.wizard.remove_rule(rule.source_field)
        print(f"Removed: {rule.source_field} -> {rule.target_field}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="task-import",
        description="Task Import - Import work items from project management tools",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--log-file", help="Also write logs to this file")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # List providers
    subparsers.add_parser("providers", help="List supported providers")

    # Default mapping
    mapping_parser = subparsers.add_parser("default-mapping", help="Print or save a provider's default mapping")
    mapping_parser.add_argument("--provider", required=True, help="Provider id (jira, asana, ...)")
    mapping_parser.add_argument("--output", help="Output file path")

    # Validate credential / mapping
    validate_parser = subparsers.add_parser("validate", help="Validate a credential and optionally a mapping")
    validate_parser.add_argument("--provider", required=True, help="Provider id")
    validate_parser.add_argument("--credential", help=f"Credential (default: ${CREDENTIAL_ENV} or prompt)")
    validate_parser.add_argument("--mapping", help="Path to mapping file to validate")
    validate_parser.add_argument("--option", action="append", help="Provider option key=value")
    validate_parser.add_argument("--config", help="Path to import config file")

    # Run import
    run_parser = subparsers.add_parser("run", help="Run an import")
    run_parser.add_argument("--provider", required=True, help="Provider id")
    run_parser.add_argument("--credential", help=f"Credential (default: ${CREDENTIAL_ENV} or prompt)")
    run_parser.add_argument("--mapping", help="Path to mapping file (default: provider default mapping)")
    run_parser.add_argument("--store", default="tasks.json", help="Path to the JSON task store")
    run_parser.add_argument("--option", action="append", help="Provider option key=value")
    run_parser.add_argument("--config", help="Path to import config file")

    # Interactive wizard
    wizard_parser = subparsers.add_parser("wizard", help="Interactive import wizard")
    wizard_parser.add_argument("--store", default="tasks.json", help="Path to the JSON task store")
    wizard_parser.add_argument("--option", action="append", help="Provider option key=value")
    wizard_parser.add_argument("--config", help="Path to import config file")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=args.verbose, log_file=args.log_file)

    commands = {
        "providers": list_providers,
        "default-mapping": show_default_mapping,
        "validate": run_validation,
        "run": run_import,
        "wizard": run_wizard,
    }
    command = commands.get(args.command)
    if command is None:
        parser.print_help()
        return 1

    try:
        return command(args)
    except ImportEngineError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2


def list_providers(args) -> int:
    """List supported providers."""
    print("\n=== Supported Providers ===")
    for provider in SourceRegistry().list():
        capabilities = ", ".join(sorted(c.value for c in provider.capabilities))
        print(f"\n{provider.id.value:8} {provider.display_name}")
        print(f"         auth: {provider.auth_method.value}; capabilities: {capabilities}")
        if provider.doc_url:
            print(f"         docs: {provider.doc_url}")
    return 0


def show_default_mapping(args) -> int:
    """Print or save a provider's default mapping."""
    provider = SourceRegistry().describe(args.provider)
    mapping = FieldMapper().build_default_mapping(provider)

    if args.output:
        save_mapping_file(mapping, args.output)
        print(f"Mapping saved to {args.output}")
    else:
        print(json.dumps({"mappings": mapping_to_dict(mapping)}, indent=2))
    return 0


def run_validation(args) -> int:
    """Validate a credential and, if given, a mapping file."""
    config = _load_config(args)
    provider = SourceRegistry().describe(args.provider)
    options = {**config.options_for(provider.id.value), **_parse_options(args.option)}

    print("\n=== Validating Credential ===")
    validator = AuthValidator(timeout=config.request_timeout)
    credential = _read_credential(args) if provider.requires_network else ""
    try:
        validated = asyncio.run(validator.validate(provider, credential, options))
    except AuthError as e:
        print(f"Credential invalid ({e.code}): {e}")
        return 1
    print(f"Credential {validated.masked or '(none)'} accepted for {validated.account.label}")

    if args.mapping:
        print("\n=== Validating Mapping ===")
        errors = FieldMapper().validate(load_mapping_file(args.mapping))
        if errors:
            for error in errors:
                print(f"  - {error}")
            print(f"\nFound {len(errors)} validation errors")
            return 1
        print("\nMapping is valid!")
    return 0


def run_import(args) -> int:
    """Run an import from the command line."""
    config = _load_config(args)
    provider = SourceRegistry().describe(args.provider)
    options = {**config.options_for(provider.id.value), **_parse_options(args.option)}
    mapper = FieldMapper()

    if args.mapping:
        mapping = load_mapping_file(args.mapping)
    else:
        mapping = mapper.build_default_mapping(provider)

    errors = mapper.validate(mapping)
    if errors:
        raise MappingValidationError(errors)

    credential = _read_credential(args) if provider.requires_network else ""
    validated = asyncio.run(AuthValidator(timeout=config.request_timeout).validate(provider, credential, options))

    store = JsonFileTaskStore(args.store)
    executor = ImportExecutor(config, field_mapper=mapper)
    job = asyncio.run(executor.run(provider, validated, mapping, store, on_progress=_print_progress, options=options))

    _print_job(job)
    print(f"Tasks stored in {args.store}")
    return 0 if job.status == JobStatus.COMPLETED else 1


def run_wizard(args) -> int:
    """Run the interactive import wizard."""
    config = _load_config(args)
    wizard = WizardController(
        config=config,
        sink=JsonFileTaskStore(args.store),
        on_progress=_print_progress,
    )
    cli = InteractiveWizardCLI(wizard, _parse_options(args.option))
    job = cli.run()
    return 0 if job is None or job.status == JobStatus.COMPLETED else 1


if __name__ == "__main__":
    sys.exit(main())
