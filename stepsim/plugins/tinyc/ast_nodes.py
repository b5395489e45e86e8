"""
AST for the tiny C front end.

Every node records the line/column of the token it started at, so the code
generator can report CompileErrors against the user's text. Child fields
default to None only so the dataclasses can share the positional base; the
parser always fills them.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True)
class CType:
    """Scalar type. Whatever the spelling, it occupies one 8-bit data word."""
    base: str = "int"           # "void", "char" or "int"
    is_unsigned: bool = False
    is_const: bool = False


@dataclass
class ASTNode:
    line: int = 0
    col: int = 0


@dataclass
class Program(ASTNode):
    """Top-level statements and function definitions, in source order."""
    items: List[ASTNode] = field(default_factory=list)


# ── Declarations ──────────────────────────

@dataclass
class VarDecl(ASTNode):
    name: str = ""
    ctype: CType = field(default_factory=CType)
    init: Optional[Expression] = None


@dataclass
class DeclList(ASTNode):
    """``int a = 1, b;``: declarators sharing one type."""
    decls: List[VarDecl] = field(default_factory=list)


@dataclass
class FuncDecl(ASTNode):
    name: str = ""
    return_type: CType = field(default_factory=CType)
    has_params: bool = False
    body: Optional[Block] = None


# ── Statements ────────────────────────────

@dataclass
class Block(ASTNode):
    statements: List[ASTNode] = field(default_factory=list)


@dataclass
class ExprStatement(ASTNode):
    expr: Optional[Expression] = None       # None for a bare ';'


@dataclass
class ReturnStmt(ASTNode):
    value: Optional[Expression] = None


@dataclass
class IfStmt(ASTNode):
    condition: Optional[Expression] = None
    then_body: Optional[ASTNode] = None
    else_body: Optional[ASTNode] = None


@dataclass
class WhileStmt(ASTNode):
    condition: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass
class DoWhileStmt(ASTNode):
    """The body runs once before the first test."""
    condition: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass
class ForStmt(ASTNode):
    init: Optional[ASTNode] = None          # DeclList or ExprStatement
    condition: Optional[Expression] = None
    update: Optional[Expression] = None
    body: Optional[ASTNode] = None


@dataclass
class BreakStmt(ASTNode):
    pass


@dataclass
class ContinueStmt(ASTNode):
    pass


# ── Expressions ───────────────────────────

@dataclass
class Expression(ASTNode):
    pass


@dataclass
class IntLiteral(Expression):
    value: int = 0


@dataclass
class CharLiteral(IntLiteral):
    pass


@dataclass
class Identifier(Expression):
    name: str = ""


@dataclass
class BinaryOp(Expression):
    op: str = ""
    left: Optional[Expression] = None
    right: Optional[Expression] = None


@dataclass
class UnaryOp(Expression):
    op: str = ""                            # - + ! ~
    operand: Optional[Expression] = None


@dataclass
class IncDec(Expression):
    op: str = ""                            # ++ or --
    prefix: bool = True
    target: Optional[Expression] = None


@dataclass
class Assignment(Expression):
    target: Optional[Expression] = None
    value: Optional[Expression] = None


@dataclass
class CompoundAssignment(Expression):
    op: str = ""                            # "+=", "-=", ...
    target: Optional[Expression] = None
    value: Optional[Expression] = None


@dataclass
class TernaryOp(Expression):
    condition: Optional[Expression] = None
    then_expr: Optional[Expression] = None
    else_expr: Optional[Expression] = None


@dataclass
class FuncCall(Expression):
    name: str = ""
    args: List[Expression] = field(default_factory=list)
