"""
Command Line Interface for PalliScribe
======================================

Runs the documentation pipeline on a recorded visit or on typed text.

Usage:
------
    # Process a recording
    palliscribe visit.m4a --name "Jane Doe" --condition "metastatic breast cancer"

    # Process typed text
    palliscribe --text "Patient states pain is worsening. Plan: continue morphine PRN."

    # Store the note for a patient
    palliscribe visit.wav --patient-id p-1 --database ./care.db

Exit codes: 0 on success, 1 on failure, 130 when interrupted.
"""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from pathlib import Path
from typing import Optional

from palliscribe.config import get_settings
from palliscribe.datastore import SQLiteDatastore
from palliscribe.exceptions import PalliScribeError
from palliscribe.models import DocumentationResult, PatientContext, ProcessingStatus
from palliscribe.pipeline import create_pipeline, save_result_to_file


class Colors:
    """ANSI color codes for terminal output."""
    HEADER = '\033[95m'
    BLUE = '\033[94m'
    CYAN = '\033[96m'
    GREEN = '\033[92m'
    YELLOW = '\033[93m'
    RED = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'


def colorize(text: str, color: str) -> str:
    """Add color to text if stdout is a terminal."""
    if sys.stdout.isatty():
        return f"{color}{text}{Colors.ENDC}"
    return text


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="palliscribe",
        description="Turn hospice and palliative-care visit recordings into SOAP notes",
        epilog="Example: palliscribe visit.m4a --patient-id p-1 --database ./care.db",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )

    parser.add_argument(
        "audio_file",
        nargs="?",
        help="Path to the recorded visit"
    )
    parser.add_argument(
        "--text", "-t",
        type=str,
        help="Process transcript text instead of an audio file"
    )

    context = parser.add_argument_group("patient context")
    context.add_argument("--name", help="Patient name (enables the context block)")
    context.add_argument("--condition", default="", help="Primary condition")
    context.add_argument(
        "--symptom", action="append", default=[], dest="symptoms",
        help="Current symptom (repeatable)"
    )
    context.add_argument(
        "--medication", action="append", default=[], dest="medications",
        help="Current medication (repeatable)"
    )

    storage = parser.add_argument_group("storage")
    storage.add_argument("--patient-id", help="Store the note for this patient")
    storage.add_argument("--visit-id", help="Link the stored note to this visit")
    storage.add_argument(
        "--database",
        help="SQLite datastore path (overrides PALLISCRIBE_DATABASE_PATH)"
    )

    parser.add_argument(
        "--output", "-o",
        type=str,
        default="./output",
        help="Output directory for results (default: ./output)"
    )
    parser.add_argument(
        "--no-save",
        action="store_true",
        help="Don't save results to files, just print"
    )

    parser.add_argument(
        "--whisper-model",
        type=str,
        choices=["tiny", "base", "small", "medium", "large"],
        help="Whisper model size (overrides config)"
    )
    parser.add_argument(
        "--ollama-model",
        type=str,
        help="Ollama model name (overrides config)"
    )

    parser.add_argument("--json", action="store_true", help="Output result as JSON")
    parser.add_argument("--quiet", "-q", action="store_true", help="Minimal output")
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output with debug info")

    return parser


def setup_logging_for_cli(verbose: bool, quiet: bool) -> None:
    """Configure logging based on CLI flags."""
    if quiet:
        level = logging.WARNING
    elif verbose:
        level = logging.DEBUG
    else:
        level = logging.INFO

    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s"
    )


def progress_callback(status: ProcessingStatus, message: str, progress: int) -> None:
    status_colors = {
        ProcessingStatus.TRANSCRIBING: Colors.BLUE,
        ProcessingStatus.SYNTHESIZING: Colors.CYAN,
        ProcessingStatus.VALIDATING: Colors.CYAN,
        ProcessingStatus.EXTRACTING: Colors.CYAN,
        ProcessingStatus.SAVING: Colors.YELLOW,
        ProcessingStatus.COMPLETED: Colors.GREEN,
        ProcessingStatus.FAILED: Colors.RED,
    }

    color = status_colors.get(status, Colors.ENDC)
    status_str = f"[{status.value.upper():^12}]"
    print(f"{colorize(status_str, color)} {progress:3d}% {message}")


def print_result(result: DocumentationResult) -> None:
    """Human-readable rendering of a finished pipeline result."""
    print(colorize("\n--- CLINICAL NOTE ---\n", Colors.HEADER))
    print(result.note.to_formatted_string())

    if result.synthesis.is_fallback:
        print(colorize(
            f"\n[Keyword fallback used: {result.synthesis.failure_reason}]",
            Colors.YELLOW
        ))

    if not result.validation.is_valid:
        print(colorize("\n--- INCOMPLETE SECTIONS ---", Colors.YELLOW))
        for suggestion in result.validation.suggestions:
            print(f"  - {suggestion}")

    entities = result.extraction.entities
    print(colorize(f"\n--- ENTITIES (confidence {entities.confidence:.2f}) ---", Colors.HEADER))
    for label, items in (
        ("Symptoms", entities.symptoms),
        ("Medications", entities.medications),
        ("Vitals", entities.vitals),
        ("Interventions", entities.interventions),
    ):
        print(f"  {label}: {', '.join(items) if items else '-'}")

    if result.record_id:
        print(colorize(f"\nStored as clinical note {result.record_id}", Colors.GREEN))


async def run_pipeline(parsed_args: argparse.Namespace) -> DocumentationResult:
    overrides = {}
    if parsed_args.whisper_model:
        overrides["whisper_model"] = parsed_args.whisper_model
    if parsed_args.ollama_model:
        overrides["ollama_model"] = parsed_args.ollama_model
    if parsed_args.database:
        overrides["database_path"] = parsed_args.database
    settings = get_settings().model_copy(update=overrides)

    datastore = None
    if parsed_args.patient_id:
        if not settings.database_path:
            raise PalliScribeError("--patient-id needs a datastore (--database or PALLISCRIBE_DATABASE_PATH)")
        datastore = SQLiteDatastore(settings.database_path)
        await datastore.initialize()

    patient_context = None
    if parsed_args.name:
        patient_context = PatientContext(
            name=parsed_args.name,
            primary_condition=parsed_args.condition,
            current_symptoms=parsed_args.symptoms,
            current_medications=parsed_args.medications,
        )

    pipeline = create_pipeline(settings=settings, datastore=datastore)
    callback = None if parsed_args.quiet or parsed_args.json else progress_callback

    if parsed_args.text:
        return await pipeline.aprocess_transcript(
            parsed_args.text,
            patient_context=patient_context,
            patient_id=parsed_args.patient_id,
            visit_id=parsed_args.visit_id,
            progress_callback=callback,
        )

    audio_path = Path(parsed_args.audio_file)
    return await pipeline.aprocess(
        audio_path.read_bytes(),
        patient_context=patient_context,
        patient_id=parsed_args.patient_id,
        visit_id=parsed_args.visit_id,
        progress_callback=callback,
        file_suffix=audio_path.suffix or ".wav",
    )


def main(args: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        args: Command line arguments (uses sys.argv if None)

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    setup_logging_for_cli(parsed_args.verbose, parsed_args.quiet)

    if not parsed_args.audio_file and not parsed_args.text:
        parser.error("Either audio_file or --text is required")

    try:
        result = asyncio.run(run_pipeline(parsed_args))

        if result.status == ProcessingStatus.FAILED:
            print(colorize(f"\nError: {result.error_message}", Colors.RED))
            return 1

        if parsed_args.json:
            print(json.dumps(result.model_dump(mode="json", by_alias=True), indent=2, default=str))
        else:
            print_result(result)

        if not parsed_args.no_save:
            saved = save_result_to_file(result, parsed_args.output)
            if not parsed_args.quiet and not parsed_args.json:
                print(colorize(f"\nResults saved to: {parsed_args.output}", Colors.GREEN))
                for file_type, path in saved.items():
                    print(f"   - {file_type}: {path}")

        return 0

    except PalliScribeError as e:
        print(colorize(f"\nError: {e.message}", Colors.RED))
        if parsed_args.verbose and e.details:
            print(colorize(f"   Details: {e.details}", Colors.YELLOW))
        return 1

    except KeyboardInterrupt:
        print(colorize("\n\nInterrupted by user", Colors.YELLOW))
        return 130

    except Exception as e:
        print(colorize(f"\nUnexpected error: {e}", Colors.RED))
        if parsed_args.verbose:
            traceback.print_exc()
        return 1


if __name__ == "__main__":
    sys.exit(main())
