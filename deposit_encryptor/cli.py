"""
Command-line interface for the deposit encryption action.

This module orchestrates all other components and provides
the user-facing CLI commands:
- encrypt
- finalize / cleanup / restore
- status
- mark
- reveal
- help
"""

from __future__ import annotations

import sys
import json
import argparse
from pathlib import Path
from typing import List, Optional

from .config import DEFAULT_MANIFEST, KEYSET_SUFFIX, TOOL_VERSION, ENV_ENCRYPTION_KEY
from .coordinator import CleanupRestoreCoordinator, FinalizeReport
from .errors import ConfigurationError, EncryptorError, TransformError
from .file_scanner import FileScanner
from .folder import EncryptionFolder
from .ledger import LedgerStore, RollbackEvent, RollbackLedger
from .log import configure_logging
from .manifest import Manifest
from .marks import MarkRegistry, write_marks
from .provider import AesGcmEnvelopeProvider, open_provider
from .transformer import TransformEngine


# ---------------------------------------------------------------------------
# Color output helpers
# ---------------------------------------------------------------------------


class Colors:
    """ANSI color codes for terminal output."""
    RED = "\033[91m"
    GREEN = "\033[92m"
    YELLOW = "\033[93m"
    BLUE = "\033[94m"
    CYAN = "\033[96m"
    RESET = "\033[0m"
    BOLD = "\033[1m"


def colored(text: str, color: str) -> str:
    """Return colored text for terminal output."""
    return f"{color}{text}{Colors.RESET}"


def print_error(msg: str) -> None:
    """Print error message to stderr."""
    print(colored(f"✗ Error: {msg}", Colors.RED), file=sys.stderr)


def print_success(msg: str) -> None:
    """Print success message."""
    print(colored(f"✓ {msg}", Colors.GREEN))


def print_warning(msg: str) -> None:
    """Print warning message."""
    print(colored(f"⚠ Warning: {msg}", Colors.YELLOW))


# ---------------------------------------------------------------------------
# CLI context
# ---------------------------------------------------------------------------


class CLIContext:
    """Shared context for CLI commands."""

    def __init__(self, manifest_path: str, verbose: bool, quiet: bool):
        self.manifest_path = Path(manifest_path)
        self.verbose = verbose
        self.quiet = quiet

        # Lazy-loaded
        self._manifest: Optional[Manifest] = None
        self._registry: Optional[MarkRegistry] = None
        self._provider: Optional[AesGcmEnvelopeProvider] = None

    @property
    def manifest(self) -> Manifest:
        """Load manifest lazily."""
        if self._manifest is None:
            self._manifest = Manifest.load(self.manifest_path)
        return self._manifest

    @property
    def registry(self) -> MarkRegistry:
        """Load the marked-files document lazily."""
        if self._registry is None:
            self._registry = MarkRegistry.load(self.manifest.encryption.metadata)
        return self._registry

    @property
    def provider(self) -> AesGcmEnvelopeProvider:
        """Connect the encryption provider lazily."""
        if self._provider is None:
            self._provider = open_provider(self.manifest.encryption)
        return self._provider

    @property
    def folder(self) -> EncryptionFolder:
        return EncryptionFolder(self.manifest.encryption.files)

    @property
    def store(self) -> LedgerStore:
        return LedgerStore(self.manifest.encryption.ledger)

    def scanner(self) -> FileScanner:
        return FileScanner(self.manifest.resources, self.registry)

    def log(self, msg: str) -> None:
        """Log message if not quiet."""
        if not self.quiet:
            print(msg)

    def log_verbose(self, msg: str) -> None:
        """Log message if verbose."""
        if self.verbose:
            print(colored(f"  → {msg}", Colors.BLUE))


# ---------------------------------------------------------------------------
# Command implementations
# ---------------------------------------------------------------------------


def cmd_encrypt(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Encrypt every marked, inserted or updated resource of the deposit.
    """
    scanned = list(ctx.scanner().scan())
    marked = [res for res, is_marked in scanned if is_marked]

    ctx.log(colored(f"Encrypting resources ({len(marked)} of {len(scanned)} eligible marked)", Colors.BOLD))

    if args.dry_run:
        ctx.log(colored("\n[DRY RUN] Preview of changes:", Colors.YELLOW))
        folder = ctx.folder
        for resource in marked:
            ctx.log(f"  {colored('→', Colors.CYAN)} {resource.path}")
            ctx.log(f"    Backup: {folder.backup_path(resource.path)}")
            ctx.log(f"    Key:    {folder.key_path(resource.path)}")
        ctx.log(colored("[DRY RUN] Preview complete - no files were modified", Colors.YELLOW))
        return 0

    if not marked:
        ctx.log(colored("No files to encrypt", Colors.YELLOW))
        return 0

    store = ctx.store
    ledger = store.load()
    if len(ledger) and not args.force:
        print_error(
            f"Rollback ledger {store.path} still holds {len(ledger)} event(s); "
            "run 'finalize' first or pass --force"
        )
        return 1
    store.attach(ledger)

    # Connect before anything is touched
    provider = ctx.provider

    engine = TransformEngine(provider, ledger, ctx.folder)
    try:
        report = engine.encrypt(scanned)
    except TransformError as e:
        print_error(f"Encryption failed: {e}")
        if args.rollback_on_failure:
            ctx.log(colored("Restoring already encrypted resources", Colors.YELLOW))
            _print_report(ctx, "Restored", CleanupRestoreCoordinator(ledger, ctx.folder, marked).restore())
        return 2

    for path in report.transformed:
        ctx.log(f"  ✓ {path}")
    for path in report.vanished:
        print_warning(f"{path} vanished before it could be encrypted")
    for path in report.already_recorded:
        print_warning(f"{path} is already encrypted and awaits finalize, skipped")

    ctx.log("")
    print_success(f"Encrypted {len(report.transformed)} file(s); ledger written to {store.path}")
    return 0


def cmd_finalize(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Clean up after a successful deposit or restore originals after a
    failed one.
    """
    success = args.command == "cleanup" or (args.command == "finalize" and args.success)

    store = ctx.store
    ledger = store.load()
    marked = list(ctx.scanner().scan_marked())

    coordinator = CleanupRestoreCoordinator(ledger, ctx.folder, marked)
    report = coordinator.finalize(success)

    _print_report(ctx, "Cleaned up" if success else "Restored", report)

    if args.keep_ledger:
        return 0

    unfinished = _unfinished_events(ledger, report)
    if unfinished:
        store.save(RollbackLedger(unfinished))
        print_warning(f"{len(unfinished)} event(s) could not be finalized and stay in {store.path}")
    else:
        store.clear()

    return 0


def cmd_status(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Show the encryption state of each resource.
    """
    manifest = ctx.manifest
    ledger = ctx.store.load()
    folder = ctx.folder
    pending = {event.param("original") for event in ledger}

    rows = []
    for resource in manifest.resources:
        marked = resource.eligible and ctx.registry.is_marked(resource.path)
        if str(resource.path) in pending and folder.backup_path(resource.path).exists():
            state = "pending"
        elif (resource.path.parent / f"{resource.path.name}{KEYSET_SUFFIX}").exists():
            state = "encrypted"
        else:
            state = "plaintext"

        rows.append({
            "path": str(resource.path),
            "status": resource.status.value,
            "eligible": resource.eligible,
            "marked": marked,
            "state": state,
        })

    if args.json:
        print(json.dumps({
            "manifest_version": manifest.version,
            "ledger_events": len(ledger),
            "encryption_folder": str(folder.path),
            "resources": rows,
        }, indent=2))
        return 0

    ctx.log(colored("Deposit Encryption Status", Colors.BOLD))
    ctx.log("")
    ctx.log(f"  Manifest version:  {manifest.version}")
    ctx.log(f"  Encryption folder: {folder.path} ({'present' if folder.exists() else 'absent'})")
    ctx.log(f"  Ledger events:     {len(ledger)}")
    ctx.log("")

    for row in rows:
        flag = colored("marked", Colors.GREEN) if row["marked"] else "-"
        ctx.log(f"  {row['state']:<10} {row['status']:<10} {flag:<6} {row['path']}")

    return 0


def cmd_mark(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Mark file names for encryption.
    """
    source = ctx.manifest.encryption.metadata
    registry = write_marks(source, args.names)

    for name in args.names:
        ctx.log_verbose(f"marked {Path(name).name}")

    print_success(f"{source} now marks {len(registry)} file name(s)")
    return 0


def cmd_reveal(ctx: CLIContext, args: argparse.Namespace) -> int:
    """
    Decrypt an encrypted resource using the key stored next to it.
    """
    path = Path(args.path)
    key = Path(args.key) if args.key else path.parent / f"{path.name}{KEYSET_SUFFIX}"

    if not path.exists() or not key.exists():
        print_error(f"Encrypted file or key not found: {path}, {key}")
        return 1

    plaintext = ctx.provider.decrypt(key, path)

    if args.output:
        Path(args.output).write_bytes(plaintext)
        print_success(f"{path} → {args.output}")
    else:
        sys.stdout.buffer.write(plaintext)
        sys.stdout.flush()

    return 0


def cmd_help(ctx: Optional[CLIContext], args: argparse.Namespace) -> int:
    """
    Show help message.
    """
    help_text = f"""
{colored('deposit-encryptor', Colors.BOLD)} — encrypt marked deposit resources with rollback

{colored('USAGE:', Colors.CYAN)}
  deposit-encryptor [options] <command> [arguments]

{colored('COMMANDS:', Colors.CYAN)}
  encrypt     Encrypt marked resources, keeping backups and a rollback ledger
  finalize    Finalize a run: --success cleans up, --failure restores
  cleanup     Same as 'finalize --success'
  restore     Same as 'finalize --failure'
  status      Show the encryption state of each resource
  mark        Mark file names for encryption
  reveal      Decrypt an encrypted resource
  help        Show this help message

{colored('GLOBAL OPTIONS:', Colors.CYAN)}
  -m, --manifest PATH       Path to deposit manifest (default: {DEFAULT_MANIFEST})
  -v, --verbose             Enable verbose output
  -q, --quiet               Suppress non-error output
  --log-file PATH           Also write a debug log to PATH

{colored('ENVIRONMENT:', Colors.CYAN)}
  {ENV_ENCRYPTION_KEY}            Key-encryption secret, used when the manifest
                            names no credentials file

{colored('EXIT CODES:', Colors.CYAN)}
  0  success
  1  configuration error
  2  encryption failed; run 'restore' to roll back

{colored('VERSION:', Colors.CYAN)}
  {TOOL_VERSION}
"""
    print(help_text)
    return 0


def _unfinished_events(ledger: RollbackLedger, report: FinalizeReport) -> List[RollbackEvent]:
    """Events that were not finalized and may be retried later."""
    done = {path.absolute() for path in report.completed}
    return [
        event for event in ledger
        if event in report.failed
        or Path(event.param("original") or "").absolute() not in done
    ]


def _print_report(ctx: CLIContext, verb: str, report: FinalizeReport) -> None:
    for path in report.completed:
        ctx.log(f"  ✓ {path}")
    for path in report.missing:
        print_warning(f"{path}: encryption artifacts missing, left as is")
    for path in report.not_transformed:
        ctx.log_verbose(f"{path}: nothing recorded")
    for event in report.failed:
        print_warning(f"could not finalize event {event.kind} {dict(event.params)}")

    ctx.log("")
    print_success(f"{verb} {len(report.completed)} file(s)")
    if not report.folder_removed:
        print_warning("encryption folder is not empty and was kept")


# ---------------------------------------------------------------------------
# Argument parsing
# ---------------------------------------------------------------------------


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="deposit-encryptor",
        description="Encrypt marked deposit resources with rollback",
        add_help=False,
    )

    # Global options
    parser.add_argument("-m", "--manifest", default=DEFAULT_MANIFEST, help="Path to deposit manifest")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose output")
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress non-error output")
    parser.add_argument("--log-file", help="Also write a debug log to this file")
    parser.add_argument("-h", "--help", action="store_true", help="Show help message")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    encrypt_parser = subparsers.add_parser("encrypt", help="Encrypt marked resources")
    encrypt_parser.add_argument("-n", "--dry-run", action="store_true", help="Show what would happen")
    encrypt_parser.add_argument("--force", action="store_true", help="Append to a non-empty ledger")
    encrypt_parser.add_argument("--rollback-on-failure", action="store_true",
                                help="Restore encrypted resources if encryption fails")

    finalize_parser = subparsers.add_parser("finalize", help="Finalize an encryption run")
    outcome = finalize_parser.add_mutually_exclusive_group(required=True)
    outcome.add_argument("--success", action="store_true", help="Deposit succeeded: clean up")
    outcome.add_argument("--failure", action="store_true", help="Deposit failed: restore originals")

    cleanup_parser = subparsers.add_parser("cleanup", help="Clean up after a successful deposit")
    restore_parser = subparsers.add_parser("restore", help="Restore originals after a failed deposit")
    for sub in (finalize_parser, cleanup_parser, restore_parser):
        sub.add_argument("--keep-ledger", action="store_true", help="Keep the ledger as an audit trail")

    status_parser = subparsers.add_parser("status", help="Show encryption state")
    status_parser.add_argument("--json", action="store_true", help="Output status as JSON")

    mark_parser = subparsers.add_parser("mark", help="Mark file names for encryption")
    mark_parser.add_argument("names", nargs="+", help="File names to mark")

    reveal_parser = subparsers.add_parser("reveal", help="Decrypt an encrypted resource")
    reveal_parser.add_argument("path", help="Encrypted resource")
    reveal_parser.add_argument("--key", help="Keyset file (default: next to the resource)")
    reveal_parser.add_argument("-o", "--output", help="Write plaintext here instead of stdout")

    subparsers.add_parser("help", help="Show help message")

    return parser


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Show help if requested or no command
    if args.help or not args.command:
        return cmd_help(None, args)

    configure_logging(
        verbose=args.verbose,
        quiet=args.quiet,
        log_file=Path(args.log_file) if args.log_file else None,
    )

    ctx = CLIContext(manifest_path=args.manifest, verbose=args.verbose, quiet=args.quiet)

    # Dispatch to command
    commands = {
        "encrypt": cmd_encrypt,
        "finalize": cmd_finalize,
        "cleanup": cmd_finalize,
        "restore": cmd_finalize,
        "status": cmd_status,
        "mark": cmd_mark,
        "reveal": cmd_reveal,
        "help": cmd_help,
    }

    cmd_func = commands.get(args.command)
    if not cmd_func:
        print_error(f"Unknown command: {args.command}")
        return 1

    try:
        return cmd_func(ctx, args)
    except ConfigurationError as e:
        print_error(str(e))
        return 1
    except EncryptorError as e:
        print_error(str(e))
        return 2
    except KeyboardInterrupt:
        print_error("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
