"""
Formula Parser for Quantity Calculations
Evaluates arithmetic quantity formulas over named roof variables
Examples: "SQ*1.10", "EAVE+RAKE", "F1SQ+F2SQ+F3SQ", "(SQ-5)*0.9"

Grammar:
    expression = term (('+' | '-') term)*
    term       = factor (('*' | '/') factor)*
    factor     = NUMBER | NAME | '(' expression ')' | '-' factor
"""

import logging
import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple, Union

from roofbid.errors import FormulaError
from roofbid.models.roof_variables import ROOF_FIELDS, SLOPE_FIELDS, RoofVariables

logger = logging.getLogger(__name__)

NUMBER = "NUMBER"
NAME = "NAME"
OPERATOR = "OPERATOR"
LPAREN = "LPAREN"
RPAREN = "RPAREN"
EOF = "EOF"

SLOPE_NAME_RE = re.compile(r"^F\d+(%s)$" % "|".join(SLOPE_FIELDS))

MAX_FORMULA_LENGTH = 500
MAX_NESTING_DEPTH = 50

Variables = Union[RoofVariables, Dict[str, float]]


@dataclass
class Token:
    type: str
    value: Union[str, float]
    position: int


def tokenize(formula: str) -> List[Token]:
    """Split a formula into tokens; names are upper-cased"""
    if len(formula) > MAX_FORMULA_LENGTH:
        raise FormulaError(f"Formula is longer than {MAX_FORMULA_LENGTH} characters",
                           formula=formula[:MAX_FORMULA_LENGTH])

    tokens = []
    pos = 0
    length = len(formula)

    while pos < length:
        char = formula[pos]

        if char.isspace():
            pos += 1
            continue

        if char.isdigit() or char == ".":
            start = pos
            while pos < length and (formula[pos].isdigit() or formula[pos] == "."):
                pos += 1
            text = formula[start:pos]
            try:
                tokens.append(Token(NUMBER, float(text), start))
            except ValueError:
                raise FormulaError(f"Invalid number: {text}", formula=formula, position=start)
            continue

        if char.isalpha() or char == "_":
            start = pos
            while pos < length and (formula[pos].isalnum() or formula[pos] == "_"):
                pos += 1
            tokens.append(Token(NAME, formula[start:pos].upper(), start))
            continue

        if char in "+-*/":
            tokens.append(Token(OPERATOR, char, pos))
            pos += 1
            continue

        if char == "(":
            tokens.append(Token(LPAREN, char, pos))
            pos += 1
            continue

        if char == ")":
            tokens.append(Token(RPAREN, char, pos))
            pos += 1
            continue

        raise FormulaError(f"Unexpected character: {char} at position {pos}",
                           formula=formula, position=pos)

    tokens.append(Token(EOF, "", length))
    return tokens


class Parser:
    """
    Recursive-descent parser producing a nested tuple tree:
    ("num", value), ("var", name), ("neg", node), (op, left, right)
    """

    def __init__(self, tokens: List[Token], formula: str = ""):
        self.tokens = tokens
        self.formula = formula
        self.pos = 0
        self.depth = 0

    def current(self) -> Token:
        return self.tokens[self.pos]

    def advance(self) -> Token:
        token = self.current()
        if token.type != EOF:
            self.pos += 1
        return token

    def error(self, message: str) -> FormulaError:
        return FormulaError(message, formula=self.formula, position=self.current().position)

    def descend(self):
        """Count one more level of parentheses or unary minus"""
        self.depth += 1
        if self.depth > MAX_NESTING_DEPTH:
            raise self.error(f"Formula nests deeper than {MAX_NESTING_DEPTH} levels")

    def parse(self):
        node = self.expression()
        if self.current().type != EOF:
            raise self.error(f"Unexpected token: {self.current().value}")
        return node

    def expression(self):
        node = self.term()
        while self.current().type == OPERATOR and self.current().value in ("+", "-"):
            op = self.advance().value
            node = (op, node, self.term())
        return node

    def term(self):
        node = self.factor()
        while self.current().type == OPERATOR and self.current().value in ("*", "/"):
            op = self.advance().value
            node = (op, node, self.factor())
        return node

    def factor(self):
        token = self.current()

        if token.type == OPERATOR and token.value == "-":
            self.advance()
            self.descend()
            node = ("neg", self.factor())
            self.depth -= 1
            return node

        if token.type == NUMBER:
            self.advance()
            return ("num", token.value)

        if token.type == NAME:
            self.advance()
            return ("var", token.value)

        if token.type == LPAREN:
            self.advance()
            self.descend()
            node = self.expression()
            if self.current().type != RPAREN:
                raise self.error(f"Expected ')' but got {self.current().type}")
            self.advance()
            self.depth -= 1
            return node

        raise self.error(f"Unexpected token: {token.type} ({token.value})")


def is_known_variable(name: str) -> bool:
    """Whole-roof field, bare slope field or per-slope name such as F3EAVE"""
    return name in ROOF_FIELDS or name in SLOPE_FIELDS or bool(SLOPE_NAME_RE.match(name))


def _lookup(name: str, values: Dict[str, float], formula: str) -> float:
    if name in values:
        return values[name]
    if is_known_variable(name):
        return 0.0
    raise FormulaError(f"Unknown variable: {name}", formula=formula)


def _evaluate(node, values: Dict[str, float], formula: str) -> float:
    kind = node[0]

    if kind == "num":
        return node[1]
    if kind == "var":
        return _lookup(node[1], values, formula)
    if kind == "neg":
        return -_evaluate(node[1], values, formula)

    left = _evaluate(node[1], values, formula)
    right = _evaluate(node[2], values, formula)
    if kind == "+":
        return left + right
    if kind == "-":
        return left - right
    if kind == "*":
        return left * right
    if right == 0:
        raise FormulaError("Division by zero", formula=formula)
    return left / right


def _formula_values(variables: Variables, slope_id: Optional[str]) -> Dict[str, float]:
    if isinstance(variables, RoofVariables):
        return variables.as_formula_values(slope_id)
    return {str(key).upper(): float(value) for key, value in (variables or {}).items()
            if value is not None}


def evaluate_formula(formula: str, variables: Variables, slope_id: Optional[str] = None) -> float:
    """
    Evaluate a quantity formula against roof variables
    Known variables missing from the vector count as 0; an empty formula is 0
    Raises FormulaError for malformed input, unknown names or division by zero
    """
    if not formula or not formula.strip():
        return 0.0

    tree = Parser(tokenize(formula), formula).parse()
    return _evaluate(tree, _formula_values(variables, slope_id), formula)


def validate_formula(formula: str) -> Tuple[bool, Optional[str], List[str]]:
    """
    Check formula syntax without evaluating it
    Returns (valid, error message, referenced variable names in first-seen order)
    """
    if not formula or not formula.strip():
        return True, None, []

    try:
        tokens = tokenize(formula)
        Parser(tokens, formula).parse()
    except FormulaError as e:
        return False, e.message, []

    names = []
    for token in tokens:
        if token.type == NAME and token.value not in names:
            names.append(token.value)

    unknown = [name for name in names if not is_known_variable(name)]
    if unknown:
        return False, f"Unknown variable: {unknown[0]}", names
    return True, None, names


@dataclass
class QuantityResult:
    quantity: float
    quantity_with_waste: float
    formula_used: Optional[str]
    error: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            "quantity": self.quantity,
            "quantity_with_waste": self.quantity_with_waste,
            "formula_used": self.formula_used,
            "error": self.error,
        }


def calculate_quantity_with_waste(formula: Optional[str], variables: Variables,
                                  waste_factor: float = 1.0, fallback: float = 0.0,
                                  slope_id: Optional[str] = None) -> QuantityResult:
    """
    Evaluate a formula and apply a waste factor, falling back on failure
    Negative results clamp to 0
    """
    quantity = fallback
    formula_used = None
    error = None

    if formula:
        try:
            quantity = evaluate_formula(formula, variables, slope_id)
            formula_used = formula
        except FormulaError as e:
            logger.warning("Formula %r failed: %s", formula, e.message)
            quantity = fallback
            error = e.message

    quantity = max(0.0, quantity)
    return QuantityResult(
        quantity=quantity,
        quantity_with_waste=max(0.0, quantity * waste_factor),
        formula_used=formula_used,
        error=error,
    )


def format_formula(formula: str) -> str:
    """Add spaces around operators for display"""
    text = (formula.replace("+", " + ")
            .replace("-", " - ")
            .replace("*", " × ")
            .replace("/", " ÷ "))
    return re.sub(r"\s+", " ", text).strip()


COMMON_FORMULAS = {
    # Area
    "squares": "SQ",
    "squares_with_waste_10": "SQ*1.10",
    "squares_with_waste_15": "SQ*1.15",

    # Linear
    "eave": "EAVE",
    "eave_and_rake": "EAVE+RAKE",
    "ridge": "R",
    "ridge_and_hip": "R+HIP",
    "valley": "VAL",
    "perimeter": "P",

    # Ice & water shield, 3ft up from the eave
    "ice_and_water": "EAVE*3/100",
    "ice_and_water_valley": "VAL",

    # Features
    "skylights": "SKYLIGHT_COUNT",
    "chimneys": "CHIMNEY_COUNT",
    "pipe_boots": "PIPE_COUNT",
    "vents": "VENT_COUNT",

    # Gutters
    "gutters": "GUTTER_LF",
    "downspouts": "DS_COUNT",
    "downspout_length": "DS_COUNT*10",
    "gutter_hangers": "GUTTER_LF/2",
}

CATEGORY_FORMULAS = {
    "tear_off": "SQ",
    "underlayment": "SQ",
    "shingles": "SQ",
    "metal_roofing": "SQ",
    "tile_roofing": "SQ",
    "flat_roofing": "SQ",
    "flashing": "EAVE+RAKE",
    "ventilation": "R",
    "gutters": "GUTTER_LF",
    "skylights": "SKYLIGHT_COUNT",
    "chimneys": "CHIMNEY_COUNT",
    "disposal": "SQ",
}


def suggested_formula(category: str) -> Optional[str]:
    return CATEGORY_FORMULAS.get(category)
