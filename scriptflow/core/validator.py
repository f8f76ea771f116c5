"""Script validation producing editor diagnostics."""

from typing import Iterable, List, Optional

from ..models.script import Diagnostic, DiagnosticSeverity, Program
from .exceptions import ScriptSyntaxError
from .lexer import Lexer
from .logging import get_logger
from .parser import Parser

logger = get_logger(__name__)


def validate(code: str, known_commands: Optional[Iterable[str]] = None) -> List[Diagnostic]:
    """
    Validate script code and return diagnostics.

    Lexer warnings are reported as ``warning`` diagnostics. A syntax error
    becomes a single ``error`` diagnostic at the offending position. When
    ``known_commands`` is given, calls to commands outside it are reported
    as warnings; they are not errors because unknown commands are no-ops at
    run time.

    Args:
        code: Script source text
        known_commands: Optional command names to check actions against

    Returns:
        List[Diagnostic]: Empty for a well-formed program
    """
    lexer = Lexer(code)
    tokens = lexer.tokenize()
    diagnostics: List[Diagnostic] = list(lexer.warnings)

    try:
        program = Parser(tokens).parse()
    except ScriptSyntaxError as e:
        logger.debug(f"Script failed to parse: {e}")
        diagnostics.append(Diagnostic(
            line=e.line,
            column=e.column,
            message=e.message,
            severity=DiagnosticSeverity.ERROR,
        ))
        return diagnostics

    if known_commands is not None:
        diagnostics.extend(_check_commands(program, set(known_commands)))

    return diagnostics


def _check_commands(program: Program, known: set) -> List[Diagnostic]:
    warnings = []
    for rule in program.rules:
        for action in rule.actions:
            if action.command != "wait" and action.command not in known:
                warnings.append(Diagnostic(
                    line=action.line,
                    column=action.column,
                    message=f"Unknown command '{action.command}'",
                    severity=DiagnosticSeverity.WARNING,
                ))
    return warnings


def has_errors(diagnostics: Iterable[Diagnostic]) -> bool:
    """True when any diagnostic blocks execution."""
    return any(d.severity == DiagnosticSeverity.ERROR for d in diagnostics)
