"""Recursive-descent parser for the automation scripting language.

Grammar::

    Program    := RuleBlock*
    RuleBlock  := WhenBlock | OnBlock | EveryBlock
    WhenBlock  := "when" EVENT [ COMPARISON VALUE ] "then" ActionList "end"
    OnBlock    := "on" EVENT [ STRING ] "do" ActionList "end"
    EveryBlock := "every" NUMBER UNIT "do" ActionList "end"
    ActionList := ( IDENTIFIER "(" ArgList? ")" )*
    ArgList    := Arg ( "," Arg )*
    Arg        := STRING | NUMBER

Top-level tokens that do not open a block are ignored. Anything malformed
inside a block raises ``ScriptSyntaxError`` with the offending position.
"""

from typing import List, Optional, Sequence, Tuple

from ..models.script import (
    ActionCall,
    ArgValue,
    Condition,
    Program,
    Rule,
    Token,
    TokenType,
    TriggerDescriptor,
    TriggerKind,
)
from .exceptions import ScriptSyntaxError
from .lexer import tokenize
from .logging import get_logger

logger = get_logger(__name__)

BLOCK_KEYWORDS = ("when", "on", "every")

COMPARISON_OPERATORS = frozenset({">", "<", ">=", "<=", "==", "!="})
COMPARISON_WORDS = frozenset({"contains"})

SCHEDULE_UNITS = frozenset({"second", "seconds", "minute", "minutes", "hour", "hours"})


def parse_number(text: str) -> ArgValue:
    """Convert a NUMBER lexeme to int or float."""
    return float(text) if "." in text else int(text)


class Parser:
    """Parses a token list into a ``Program``."""

    def __init__(self, tokens: Sequence[Token]):
        self.tokens: List[Token] = list(tokens)
        self.pos = 0

    # -- cursor helpers -------------------------------------------------

    def cur(self) -> Optional[Token]:
        if self.pos < len(self.tokens):
            return self.tokens[self.pos]
        return None

    def advance(self) -> Token:
        token = self.tokens[self.pos]
        self.pos += 1
        return token

    def check(self, token_type: TokenType, value: Optional[str] = None) -> bool:
        token = self.cur()
        if token is None or token.type != token_type:
            return False
        return value is None or token.value == value

    def match(self, token_type: TokenType, value: Optional[str] = None) -> Optional[Token]:
        if self.check(token_type, value):
            return self.advance()
        return None

    def expect(self, token_type: TokenType, value: Optional[str], message: str) -> Token:
        token = self.match(token_type, value)
        if token is None:
            self.error(message)
        return token

    def error(self, message: str, token: Optional[Token] = None) -> None:
        if token is None:
            token = self.cur()
        if token is None:
            token = self.tokens[-1] if self.tokens else None
            if token is not None:
                message = f"{message} (reached end of script)"
        line = token.line if token else 1
        column = token.column if token else 1
        raise ScriptSyntaxError(message, line=line, column=column)

    # -- productions ----------------------------------------------------

    def parse(self) -> Program:
        rules: List[Rule] = []
        index = 0

        while index < len(self.tokens):
            token = self.tokens[index]
            if token.type == TokenType.KEYWORD and token.value in BLOCK_KEYWORDS:
                rule, index = self.parse_rule_block(index)
                rules.append(rule)
                continue
            index += 1

        logger.debug(f"Parsed program with {len(rules)} rules")
        return Program(rules=rules)

    def parse_rule_block(self, start: int) -> Tuple[Rule, int]:
        """Parse the block opened at ``start``; return it and the index after ``end``."""
        self.pos = start
        opener = self.advance()

        if opener.value == "when":
            trigger = self.parse_when_header()
        elif opener.value == "on":
            trigger = self.parse_on_header()
        else:
            trigger = self.parse_every_header()

        actions = self.parse_action_list(opener)
        return Rule(trigger=trigger, actions=actions), self.pos

    def parse_event_name(self, keyword: str) -> str:
        token = self.match(TokenType.IDENTIFIER)
        if token is None:
            self.error(f"Expected event name after '{keyword}'")
        return token.value

    def parse_when_header(self) -> TriggerDescriptor:
        event_name = self.parse_event_name("when")
        condition = None

        token = self.cur()
        if token is not None and self._is_comparison(token):
            operator = self.advance().value
            value = self.cur()
            if value is None or value.type not in (TokenType.STRING, TokenType.NUMBER, TokenType.IDENTIFIER):
                self.error(f"Expected a value after '{operator}'")
            self.advance()
            condition = Condition(left=event_name, operator=operator, right=value.value)
        elif token is not None and token.type == TokenType.OPERATOR:
            self.error(f"Unsupported comparison operator '{token.value}'")

        self.expect(TokenType.KEYWORD, "then", "Expected 'then' after 'when' trigger")
        return TriggerDescriptor(kind=TriggerKind.EVENT, event_name=event_name, condition=condition)

    def parse_on_header(self) -> TriggerDescriptor:
        event_name = self.parse_event_name("on")
        condition = None

        argument = self.match(TokenType.STRING)
        if argument is not None:
            condition = Condition(left=event_name, operator="==", right=argument.value)

        self.expect(TokenType.KEYWORD, "do", "Expected 'do' after 'on' trigger")
        return TriggerDescriptor(kind=TriggerKind.EVENT, event_name=event_name, condition=condition)

    def parse_every_header(self) -> TriggerDescriptor:
        amount = self.expect(TokenType.NUMBER, None, "Expected a number after 'every'")

        unit = self.cur()
        if unit is None or unit.type not in (TokenType.KEYWORD, TokenType.IDENTIFIER) \
                or unit.value not in SCHEDULE_UNITS:
            self.error("Expected a time unit (seconds, minutes, hour, hours) after 'every' amount")
        self.advance()

        self.expect(TokenType.KEYWORD, "do", "Expected 'do' after 'every' schedule")
        return TriggerDescriptor(kind=TriggerKind.SCHEDULE, schedule_expr=f"{amount.value} {unit.value}")

    def parse_action_list(self, opener: Token) -> List[ActionCall]:
        actions: List[ActionCall] = []

        while True:
            token = self.cur()
            if token is None:
                self.error(
                    f"Missing 'end' for '{opener.value}' block started on line {opener.line}"
                )
            if token.type == TokenType.KEYWORD and token.value == "end":
                self.advance()
                return actions
            if token.type != TokenType.IDENTIFIER:
                self.error(f"Unexpected '{token.value}' in action list, expected a command or 'end'")
            actions.append(self.parse_action())

    def parse_action(self) -> ActionCall:
        name = self.advance()
        self.expect(TokenType.SYMBOL, "(", f"Expected '(' after command '{name.value}'")

        args: List[ArgValue] = []
        if not self.check(TokenType.SYMBOL, ")"):
            args.append(self.parse_argument())
            while self.match(TokenType.SYMBOL, ","):
                args.append(self.parse_argument())

        self.expect(TokenType.SYMBOL, ")", f"Expected ')' to close arguments of '{name.value}'")
        return ActionCall(command=name.value, args=args, line=name.line, column=name.column)

    def parse_argument(self) -> ArgValue:
        token = self.cur()
        if token is not None and token.type == TokenType.STRING:
            return self.advance().value
        if token is not None and token.type == TokenType.NUMBER:
            return parse_number(self.advance().value)
        self.error("Expected a string or number argument")

    @staticmethod
    def _is_comparison(token: Token) -> bool:
        if token.type == TokenType.OPERATOR:
            return token.value in COMPARISON_OPERATORS
        return token.type == TokenType.KEYWORD and token.value in COMPARISON_WORDS


def parse(tokens: Sequence[Token]) -> Program:
    """Parse a token stream into a Program. Raises ScriptSyntaxError."""
    return Parser(tokens).parse()


def parse_source(code: str) -> Program:
    """Tokenize and parse script text in one step."""
    return parse(tokenize(code))
