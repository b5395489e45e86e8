"""
tiny8 code generator for the tiny C front end.

Translates the AST into a flat list of tiny8 instructions.

Register usage convention:
  - R0..R3 form an evaluation stack: an expression compiled into Rn may use
    Rn+1.. as scratch. Expressions needing more than four live values are
    rejected with a CompileError.
  - Statement-level expressions evaluate into R0.
  - ``return expr;`` leaves the value in R0 and executes HALT.

Memory layout:
  - Data words 0..31 hold variables, allocated in declaration order. Every
    declaration gets its own word; inner scopes never reuse outer slots.
  - Code lives in a separate instruction space; a jump target is the index
    of an instruction in the compiled program.

Generation is two-pass like an assembler: the first pass emits instructions
with symbolic labels, the second resolves labels to instruction indices.
"""

from __future__ import annotations
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ...errors import CompileError
from .ast_nodes import *


NUM_REGS = 4
DATA_WORDS = 32
MAX_INSTRUCTIONS = 256      # jump targets are 8-bit


class CodeGenError(CompileError):
    pass


# ──────────────────────────────────────────────
# Symbol / scope tracking
# ──────────────────────────────────────────────

@dataclass
class Symbol:
    name: str
    ctype: CType
    addr: int


@dataclass
class Scope:
    symbols: Dict[str, Symbol] = field(default_factory=dict)
    parent: Optional[Scope] = None

    def lookup(self, name: str) -> Optional[Symbol]:
        if name in self.symbols:
            return self.symbols[name]
        if self.parent:
            return self.parent.lookup(name)
        return None

    def define(self, sym: Symbol):
        self.symbols[sym.name] = sym


@dataclass
class Instr:
    """One tiny8 instruction before label resolution."""
    op: str
    rd: int = 0
    rs: int = 0
    imm: int = 0
    target: Optional[str] = None    # label resolved into imm
    line: int = 0


# Binary operators mapping straight onto an ALU opcode
ALU_OPS = {"+": "ADD", "-": "SUB", "*": "MUL", "&": "AND", "|": "OR", "^": "XOR"}
UNSUPPORTED_OPS = {"/", "%", "<<", ">>"}


class CodeGenerator:

    def __init__(self):
        self._code: List[Instr] = []
        self._labels: Dict[str, int] = {}
        self._label_counter = 0
        self._global_scope = Scope()
        self._scope = self._global_scope
        self._next_addr = 0
        self._break_labels: List[str] = []
        self._continue_labels: List[str] = []
        self._seen_main = False

    # ── Label generation ──────────────────────

    def _label(self, prefix: str = "L") -> str:
        self._label_counter += 1
        return f".{prefix}{self._label_counter}"

    def _place(self, label: str):
        self._labels[label] = len(self._code)

    # ── Output helpers ────────────────────────

    def _emit(self, op: str, rd: int = 0, rs: int = 0, imm: int = 0,
              target: Optional[str] = None, node: Optional[ASTNode] = None):
        self._code.append(Instr(op, rd, rs, imm & 0xFF, target,
                                node.line if node is not None else 0))

    def _reg(self, index: int, node: ASTNode) -> int:
        if index >= NUM_REGS:
            raise CodeGenError(f"Expression too complex (needs more than {NUM_REGS} registers)",
                               node.line, node.col)
        return index

    # ── Main generation entry point ───────────

    def generate(self, program: Program) -> List[Instr]:
        """Generate the instruction list for a Program AST."""
        for item in program.items:
            if isinstance(item, FuncDecl):
                self._gen_function(item)
            else:
                self._gen_statement(item)
        return self._resolve()

    def _resolve(self) -> List[Instr]:
        if len(self._code) > MAX_INSTRUCTIONS:
            raise CodeGenError(f"Program too large: {len(self._code)} instructions "
                               f"(limit {MAX_INSTRUCTIONS})")
        for index, ins in enumerate(self._code):
            if ins.target is None:
                continue
            dest = self._labels[ins.target]
            if dest > 0xFF:
                raise CodeGenError(f"Jump target {dest} out of 8-bit range", ins.line)
            if dest == index:
                # A jump to itself reads as "fall through" to the engine
                raise CodeGenError("Internal error: self-referencing jump", ins.line)
            ins.imm = dest
        return self._code

    # ── Functions ─────────────────────────────

    def _gen_function(self, decl: FuncDecl):
        if decl.name != "main":
            raise CodeGenError(f"Only main() may be defined, got {decl.name}()",
                               decl.line, decl.col)
        if self._seen_main:
            raise CodeGenError("main() defined twice", decl.line, decl.col)
        if decl.has_params:
            raise CodeGenError("main() cannot take parameters", decl.line, decl.col)
        self._seen_main = True
        self._gen_block(decl.body)

    # ── Statements ────────────────────────────

    def _gen_statement(self, node: ASTNode):
        if isinstance(node, Block):
            self._gen_block(node)
        elif isinstance(node, DeclList):
            for decl in node.decls:
                self._gen_var_decl(decl)
        elif isinstance(node, ExprStatement):
            if node.expr is not None:
                self._gen_expr(node.expr, 0)
        elif isinstance(node, IfStmt):
            self._gen_if(node)
        elif isinstance(node, WhileStmt):
            self._gen_while(node)
        elif isinstance(node, DoWhileStmt):
            self._gen_do_while(node)
        elif isinstance(node, ForStmt):
            self._gen_for(node)
        elif isinstance(node, BreakStmt):
            if not self._break_labels:
                raise CodeGenError("'break' outside of a loop", node.line, node.col)
            self._emit("JMP", target=self._break_labels[-1], node=node)
        elif isinstance(node, ContinueStmt):
            if not self._continue_labels:
                raise CodeGenError("'continue' outside of a loop", node.line, node.col)
            self._emit("JMP", target=self._continue_labels[-1], node=node)
        elif isinstance(node, ReturnStmt):
            if node.value is not None:
                self._gen_expr(node.value, 0)
            self._emit("HALT", node=node)
        elif isinstance(node, FuncDecl):
            raise CodeGenError("Nested function definitions are not supported",
                               node.line, node.col)
        else:
            raise CodeGenError(f"Unsupported statement: {type(node).__name__}",
                               node.line, node.col)

    def _gen_block(self, block: Block):
        self._scope = Scope(parent=self._scope)
        try:
            for stmt in block.statements:
                self._gen_statement(stmt)
        finally:
            self._scope = self._scope.parent

    def _gen_var_decl(self, decl: VarDecl):
        if decl.name in self._scope.symbols:
            raise CodeGenError(f"Redeclaration of '{decl.name}'", decl.line, decl.col)
        if self._next_addr >= DATA_WORDS:
            raise CodeGenError(f"Out of data memory ({DATA_WORDS} words) declaring '{decl.name}'",
                               decl.line, decl.col)
        # Initializer sees the outer binding of a shadowed name
        if decl.init is not None:
            self._gen_expr(decl.init, 0)
        sym = Symbol(decl.name, decl.ctype, self._next_addr)
        self._next_addr += 1
        self._scope.define(sym)
        if decl.init is not None:
            self._emit("STORE", 0, imm=sym.addr, node=decl)

    def _gen_cond_jump_false(self, cond: Expression, label: str):
        self._gen_expr(cond, 0)
        self._emit("JZ", 0, target=label, node=cond)

    def _gen_if(self, node: IfStmt):
        else_label = self._label("else")
        end_label = self._label("endif")
        self._gen_cond_jump_false(node.condition, else_label if node.else_body else end_label)
        self._gen_statement(node.then_body)
        if node.else_body is not None:
            self._emit("JMP", target=end_label, node=node)
            self._place(else_label)
            self._gen_statement(node.else_body)
        self._place(end_label)

    def _gen_loop_body(self, body: ASTNode, break_label: str, continue_label: str):
        self._break_labels.append(break_label)
        self._continue_labels.append(continue_label)
        try:
            self._gen_statement(body)
        finally:
            self._break_labels.pop()
            self._continue_labels.pop()

    def _gen_while(self, node: WhileStmt):
        top = self._label("while")
        end = self._label("wend")
        self._place(top)
        self._gen_cond_jump_false(node.condition, end)
        self._gen_loop_body(node.body, end, top)
        self._emit("JMP", target=top, node=node)
        self._place(end)

    def _gen_do_while(self, node: DoWhileStmt):
        top = self._label("do")
        cont = self._label("dcond")
        end = self._label("dend")
        self._place(top)
        self._gen_loop_body(node.body, end, cont)
        self._place(cont)
        self._gen_cond_jump_false(node.condition, end)
        self._emit("JMP", target=top, node=node)
        self._place(end)

    def _gen_for(self, node: ForStmt):
        self._scope = Scope(parent=self._scope)
        try:
            if node.init is not None:
                self._gen_statement(node.init)
            top = self._label("for")
            cont = self._label("fnext")
            end = self._label("fend")
            self._place(top)
            if node.condition is not None:
                self._gen_cond_jump_false(node.condition, end)
            else:
                # Keeps the back-edge JMP from targeting itself in for(;;);
                self._emit("NOP", node=node)
            self._gen_loop_body(node.body, end, cont)
            self._place(cont)
            if node.update is not None:
                self._gen_expr(node.update, 0)
            self._emit("JMP", target=top, node=node)
            self._place(end)
        finally:
            self._scope = self._scope.parent

    # ── Expressions ───────────────────────────

    def _lookup(self, node: Expression) -> Symbol:
        if not isinstance(node, Identifier):
            raise CodeGenError("Assignment target must be a variable", node.line, node.col)
        sym = self._scope.lookup(node.name)
        if sym is None:
            raise CodeGenError(f"Undeclared variable '{node.name}'", node.line, node.col)
        return sym

    def _assignable(self, node: Expression) -> Symbol:
        sym = self._lookup(node)
        if sym.ctype.is_const:
            raise CodeGenError(f"Cannot assign to const '{sym.name}'", node.line, node.col)
        return sym

    def _gen_normalize(self, dst: int, node: ASTNode):
        """dst = (dst != 0)"""
        tmp = self._reg(dst + 1, node)
        self._emit("LOADI", tmp, imm=0, node=node)
        self._emit("CMPEQ", dst, tmp, node=node)
        self._emit("LOADI", tmp, imm=1, node=node)
        self._emit("XOR", dst, tmp, node=node)

    def _gen_not(self, dst: int, node: ASTNode):
        """dst = (dst == 0)"""
        tmp = self._reg(dst + 1, node)
        self._emit("LOADI", tmp, imm=0, node=node)
        self._emit("CMPEQ", dst, tmp, node=node)

    def _gen_expr(self, node: Expression, dst: int):
        """Evaluate ``node`` into register ``dst`` (may clobber dst+1..)."""
        dst = self._reg(dst, node)

        if isinstance(node, (IntLiteral, CharLiteral)):
            if node.value > 0xFF:
                raise CodeGenError(f"Constant {node.value} does not fit in 8 bits",
                                   node.line, node.col)
            self._emit("LOADI", dst, imm=node.value, node=node)

        elif isinstance(node, Identifier):
            sym = self._lookup(node)
            self._emit("LOAD", dst, imm=sym.addr, node=node)

        elif isinstance(node, Assignment):
            sym = self._assignable(node.target)
            self._gen_expr(node.value, dst)
            self._emit("STORE", dst, imm=sym.addr, node=node)

        elif isinstance(node, CompoundAssignment):
            sym = self._assignable(node.target)
            op = node.op[:-1]
            if op not in ALU_OPS:
                raise CodeGenError(f"Operator '{node.op}' is not supported by tiny8",
                                   node.line, node.col)
            self._emit("LOAD", dst, imm=sym.addr, node=node)
            rhs = self._reg(dst + 1, node)
            self._gen_expr(node.value, rhs)
            self._emit(ALU_OPS[op], dst, rhs, node=node)
            self._emit("STORE", dst, imm=sym.addr, node=node)

        elif isinstance(node, IncDec):
            sym = self._assignable(node.target)
            tmp = self._reg(dst + 1, node)
            op, undo = ("ADD", "SUB") if node.op == "++" else ("SUB", "ADD")
            self._emit("LOAD", dst, imm=sym.addr, node=node)
            self._emit("LOADI", tmp, imm=1, node=node)
            self._emit(op, dst, tmp, node=node)
            self._emit("STORE", dst, imm=sym.addr, node=node)
            if not node.prefix:
                self._emit(undo, dst, tmp, node=node)

        elif isinstance(node, UnaryOp):
            self._gen_unary(node, dst)

        elif isinstance(node, BinaryOp):
            self._gen_binary(node, dst)

        elif isinstance(node, TernaryOp):
            else_label = self._label("telse")
            end_label = self._label("tend")
            self._gen_expr(node.condition, dst)
            self._emit("JZ", dst, target=else_label, node=node)
            self._gen_expr(node.then_expr, dst)
            self._emit("JMP", target=end_label, node=node)
            self._place(else_label)
            self._gen_expr(node.else_expr, dst)
            self._place(end_label)

        elif isinstance(node, FuncCall):
            raise CodeGenError(f"Function calls are not supported ({node.name})",
                               node.line, node.col)

        else:
            raise CodeGenError(f"Unsupported expression: {type(node).__name__}",
                               node.line, node.col)

    def _gen_unary(self, node: UnaryOp, dst: int):
        self._gen_expr(node.operand, dst)
        if node.op == "+":
            return
        tmp = self._reg(dst + 1, node)
        if node.op == "-":
            # dst = 0 - dst
            self._emit("LOADI", tmp, imm=0, node=node)
            self._emit("SUB", tmp, dst, node=node)
            self._emit("MOV", dst, tmp, node=node)
        elif node.op == "~":
            self._emit("LOADI", tmp, imm=0xFF, node=node)
            self._emit("XOR", dst, tmp, node=node)
        elif node.op == "!":
            self._gen_not(dst, node)
        else:
            raise CodeGenError(f"Unsupported unary operator '{node.op}'", node.line, node.col)

    def _gen_binary(self, node: BinaryOp, dst: int):
        op = node.op

        if op in UNSUPPORTED_OPS:
            raise CodeGenError(f"Operator '{op}' is not supported by tiny8", node.line, node.col)

        # Short-circuit forms
        if op == "&&":
            end = self._label("and")
            self._gen_expr(node.left, dst)
            self._emit("JZ", dst, target=end, node=node)     # dst already 0
            self._gen_expr(node.right, dst)
            self._gen_normalize(dst, node)
            self._place(end)
            return
        if op == "||":
            rhs_label = self._label("orr")
            end = self._label("or")
            self._gen_expr(node.left, dst)
            self._gen_normalize(dst, node)
            self._emit("JZ", dst, target=rhs_label, node=node)
            self._emit("JMP", target=end, node=node)
            self._place(rhs_label)
            self._gen_expr(node.right, dst)
            self._gen_normalize(dst, node)
            self._place(end)
            return

        rhs = self._reg(dst + 1, node)
        self._gen_expr(node.left, dst)
        self._gen_expr(node.right, rhs)

        if op in ALU_OPS:
            self._emit(ALU_OPS[op], dst, rhs, node=node)
        elif op == "<":
            self._emit("CMPLT", dst, rhs, node=node)
        elif op == ">":
            self._emit("CMPLT", rhs, dst, node=node)
            self._emit("MOV", dst, rhs, node=node)
        elif op == "<=":
            # !(rhs < dst)
            self._emit("CMPLT", rhs, dst, node=node)
            self._emit("MOV", dst, rhs, node=node)
            self._gen_not(dst, node)
        elif op == ">=":
            self._emit("CMPLT", dst, rhs, node=node)
            self._gen_not(dst, node)
        elif op == "==":
            self._emit("CMPEQ", dst, rhs, node=node)
        elif op == "!=":
            self._emit("CMPEQ", dst, rhs, node=node)
            self._gen_not(dst, node)
        else:
            raise CodeGenError(f"Unsupported operator '{op}'", node.line, node.col)
