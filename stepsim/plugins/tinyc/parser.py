"""
Recursive-descent parser for the tiny C front end.

Statements are dispatched on their leading keyword through a table; binary
expressions are parsed by precedence climbing over BINARY_PRECEDENCE, so
adding an operator is a one-line change. Accepted subset:

  - Scalar declarations with initializers: int/char/unsigned/signed/const
  - Optional function wrapper ``int main() { ... }`` (no parameters)
  - Top-level statements outside any function
  - Expressions: assignment and compound assignment, ternary, logical,
    bitwise, comparison, additive, multiplicative, unary, ++/--
  - Control flow: if/else, while, do-while, for, break, continue, return
"""

from __future__ import annotations
from typing import Callable, Dict, List, Optional

from ...errors import CompileError
from .lexer import Token, TokenType
from .ast_nodes import *


class ParseError(CompileError):
    def __init__(self, message: str, token: Token):
        self.token = token
        super().__init__(f"{message} (got {token.type.name} = {token.value!r})",
                         token.line, token.col)


T = TokenType

TYPE_KEYWORDS = (T.KW_VOID, T.KW_CHAR, T.KW_INT, T.KW_UNSIGNED, T.KW_SIGNED, T.KW_CONST)
BASE_TYPES = (T.KW_VOID, T.KW_CHAR, T.KW_INT)

# Higher binds tighter; every level is left-associative
BINARY_PRECEDENCE: Dict[TokenType, int] = {
    T.OR: 1,
    T.AND: 2,
    T.PIPE: 3,
    T.CARET: 4,
    T.AMP: 5,
    T.EQ: 6, T.NEQ: 6,
    T.LT: 7, T.GT: 7, T.LE: 7, T.GE: 7,
    T.LSHIFT: 8, T.RSHIFT: 8,
    T.PLUS: 9, T.MINUS: 9,
    T.STAR: 10, T.SLASH: 10, T.PERCENT: 10,
}

COMPOUND_ASSIGN = frozenset({
    T.PLUS_ASSIGN, T.MINUS_ASSIGN, T.STAR_ASSIGN, T.SLASH_ASSIGN,
    T.PERCENT_ASSIGN, T.AMP_ASSIGN, T.PIPE_ASSIGN, T.CARET_ASSIGN,
})

PREFIX_OPS = (T.MINUS, T.PLUS, T.BANG, T.TILDE)


class Parser:
    """Builds a Program AST from the Lexer's token list."""

    def __init__(self, tokens: List[Token]):
        self.tokens = tokens
        self.pos = 0
        self._statements: Dict[TokenType, Callable[[], ASTNode]] = {
            T.LBRACE: self._parse_block,
            T.KW_RETURN: self._parse_return,
            T.KW_IF: self._parse_if,
            T.KW_WHILE: self._parse_while,
            T.KW_DO: self._parse_do_while,
            T.KW_FOR: self._parse_for,
            T.KW_BREAK: lambda: self._parse_jump(BreakStmt),
            T.KW_CONTINUE: lambda: self._parse_jump(ContinueStmt),
            T.SEMI: self._parse_empty,
        }

    # ── Token access ────────────────────────

    def _cur(self) -> Token:
        return self.tokens[self.pos]

    def _peek(self, offset: int) -> Token:
        return self.tokens[min(self.pos + offset, len(self.tokens) - 1)]

    def _at(self, *types: TokenType) -> bool:
        return self._cur().type in types

    def _advance(self) -> Token:
        tok = self._cur()
        self.pos = min(self.pos + 1, len(self.tokens) - 1)
        return tok

    def _match(self, *types: TokenType) -> Optional[Token]:
        return self._advance() if self._at(*types) else None

    def _expect(self, ttype: TokenType, msg: str = "") -> Token:
        if not self._at(ttype):
            raise ParseError(msg or f"Expected {ttype.value!r}", self._cur())
        return self._advance()

    # ── Program ─────────────────────────────

    def parse(self) -> Program:
        """Parse the full token stream into a Program AST."""
        prog = Program(line=1, col=1)
        while not self._at(T.EOF):
            if self._at(*TYPE_KEYWORDS) and self._is_function_def():
                prog.items.append(self._parse_func_def())
            else:
                prog.items.append(self._parse_statement())
        return prog

    def _is_function_def(self) -> bool:
        i = 0
        while self._peek(i).type in TYPE_KEYWORDS:
            i += 1
        return self._peek(i).type is T.IDENT and self._peek(i + 1).type is T.LPAREN

    def _parse_func_def(self) -> FuncDecl:
        ctype = self._parse_type()
        name = self._expect(T.IDENT, "Expected function name")
        self._expect(T.LPAREN)
        self._match(T.KW_VOID)
        has_params = not self._at(T.RPAREN)
        # Parameters are rejected by the code generator; skip them here
        while not self._at(T.RPAREN, T.EOF):
            self._advance()
        self._expect(T.RPAREN, "Expected ')' after parameters")
        return FuncDecl(name=name.value, return_type=ctype, has_params=has_params,
                        body=self._parse_block(), line=name.line, col=name.col)

    # ── Types and declarations ──────────────

    def _parse_type(self) -> CType:
        start = self._cur()
        flags = set()
        base = None
        while self._at(*TYPE_KEYWORDS):
            tok = self._advance()
            if tok.type in BASE_TYPES:
                if base is not None:
                    raise ParseError("Duplicate type specifier", tok)
                base = tok.value
            else:
                flags.add(tok.type)
        if base is None and not flags:
            raise ParseError("Expected type specifier", start)
        if self._at(T.STAR):
            raise ParseError("Pointers are not supported", self._cur())
        return CType(base=base or "int",
                     is_unsigned=T.KW_UNSIGNED in flags,
                     is_const=T.KW_CONST in flags)

    def _parse_decl_list(self) -> DeclList:
        """One declaration, without its trailing ';'."""
        start = self._cur()
        ctype = self._parse_type()
        if ctype.base == "void":
            raise ParseError("Variables cannot have type void", start)
        decls = DeclList(line=start.line, col=start.col)
        while True:
            name = self._expect(T.IDENT, "Expected variable name")
            if self._at(T.LPAREN):
                raise ParseError("Nested function definitions are not supported", self._cur())
            init = self._parse_assignment() if self._match(T.ASSIGN) else None
            decls.decls.append(VarDecl(name=name.value, ctype=ctype, init=init,
                                       line=name.line, col=name.col))
            if not self._match(T.COMMA):
                return decls

    # ── Statements ──────────────────────────

    def _parse_statement(self) -> ASTNode:
        handler = self._statements.get(self._cur().type)
        if handler is not None:
            return handler()
        if self._at(*TYPE_KEYWORDS):
            decls = self._parse_decl_list()
            self._expect(T.SEMI, "Expected ';' after variable declaration")
            return decls
        start = self._cur()
        expr = self._parse_expr()
        self._expect(T.SEMI, "Expected ';' after expression")
        return ExprStatement(expr=expr, line=start.line, col=start.col)

    def _parse_block(self) -> Block:
        brace = self._expect(T.LBRACE)
        block = Block(line=brace.line, col=brace.col)
        while not self._at(T.RBRACE, T.EOF):
            block.statements.append(self._parse_statement())
        self._expect(T.RBRACE)
        return block

    def _parse_empty(self) -> ExprStatement:
        semi = self._advance()
        return ExprStatement(expr=None, line=semi.line, col=semi.col)

    def _parse_jump(self, node_cls) -> ASTNode:
        kw = self._advance()
        self._expect(T.SEMI, f"Expected ';' after {kw.value}")
        return node_cls(line=kw.line, col=kw.col)

    def _parse_return(self) -> ReturnStmt:
        kw = self._advance()
        value = None if self._at(T.SEMI) else self._parse_expr()
        self._expect(T.SEMI, "Expected ';' after return")
        return ReturnStmt(value=value, line=kw.line, col=kw.col)

    def _parse_condition(self) -> Expression:
        """``( expr )`` as used by if, while and do-while."""
        self._expect(T.LPAREN)
        cond = self._parse_expr()
        self._expect(T.RPAREN)
        return cond

    def _parse_if(self) -> IfStmt:
        kw = self._advance()
        cond = self._parse_condition()
        then_body = self._parse_statement()
        else_body = self._parse_statement() if self._match(T.KW_ELSE) else None
        return IfStmt(condition=cond, then_body=then_body, else_body=else_body,
                      line=kw.line, col=kw.col)

    def _parse_while(self) -> WhileStmt:
        kw = self._advance()
        cond = self._parse_condition()
        return WhileStmt(condition=cond, body=self._parse_statement(),
                         line=kw.line, col=kw.col)

    def _parse_do_while(self) -> DoWhileStmt:
        kw = self._advance()
        body = self._parse_statement()
        self._expect(T.KW_WHILE, "Expected 'while' after do body")
        cond = self._parse_condition()
        self._expect(T.SEMI)
        return DoWhileStmt(condition=cond, body=body, line=kw.line, col=kw.col)

    def _parse_for(self) -> ForStmt:
        kw = self._advance()
        self._expect(T.LPAREN)

        init = None
        if self._at(*TYPE_KEYWORDS):
            init = self._parse_decl_list()
        elif not self._at(T.SEMI):
            start = self._cur()
            init = ExprStatement(expr=self._parse_expr(), line=start.line, col=start.col)
        self._expect(T.SEMI)

        cond = None if self._at(T.SEMI) else self._parse_expr()
        self._expect(T.SEMI)
        update = None if self._at(T.RPAREN) else self._parse_expr()
        self._expect(T.RPAREN)

        return ForStmt(init=init, condition=cond, update=update,
                       body=self._parse_statement(), line=kw.line, col=kw.col)

    # ── Expressions ─────────────────────────

    def _parse_expr(self) -> Expression:
        expr = self._parse_assignment()
        if self._at(T.COMMA):
            raise ParseError("Comma operator is not supported", self._cur())
        return expr

    def _parse_assignment(self) -> Expression:
        target = self._parse_conditional()
        if self._at(T.ASSIGN):
            op = self._advance()
            return Assignment(target=target, value=self._parse_assignment(),
                              line=op.line, col=op.col)
        if self._cur().type in COMPOUND_ASSIGN:
            op = self._advance()
            return CompoundAssignment(op=op.value, target=target,
                                      value=self._parse_assignment(),
                                      line=op.line, col=op.col)
        return target

    def _parse_conditional(self) -> Expression:
        cond = self._parse_binary(1)
        if not self._match(T.QUESTION):
            return cond
        then_expr = self._parse_expr()
        self._expect(T.COLON, "Expected ':' in conditional expression")
        return TernaryOp(condition=cond, then_expr=then_expr,
                         else_expr=self._parse_conditional(),
                         line=cond.line, col=cond.col)

    def _parse_binary(self, min_prec: int) -> Expression:
        left = self._parse_unary()
        while BINARY_PRECEDENCE.get(self._cur().type, 0) >= min_prec:
            op = self._advance()
            right = self._parse_binary(BINARY_PRECEDENCE[op.type] + 1)
            left = BinaryOp(op=op.value, left=left, right=right, line=op.line, col=op.col)
        return left

    def _parse_unary(self) -> Expression:
        tok = self._cur()
        if self._match(*PREFIX_OPS):
            return UnaryOp(op=tok.value, operand=self._parse_unary(),
                           line=tok.line, col=tok.col)
        if self._match(T.INC, T.DEC):
            return IncDec(op=tok.value, prefix=True, target=self._parse_unary(),
                          line=tok.line, col=tok.col)
        if self._at(T.AMP, T.STAR):
            raise ParseError("Pointers are not supported", tok)

        expr = self._parse_primary()
        while self._at(T.INC, T.DEC):
            op = self._advance()
            expr = IncDec(op=op.value, prefix=False, target=expr, line=op.line, col=op.col)
        return expr

    def _parse_primary(self) -> Expression:
        tok = self._advance()

        if tok.type is T.INT_LITERAL:
            return IntLiteral(value=tok.value, line=tok.line, col=tok.col)
        if tok.type is T.CHAR_LITERAL:
            return CharLiteral(value=tok.value, line=tok.line, col=tok.col)

        if tok.type is T.IDENT:
            if not self._match(T.LPAREN):
                return Identifier(name=tok.value, line=tok.line, col=tok.col)
            args = []
            while not self._at(T.RPAREN):
                if args:
                    self._expect(T.COMMA, "Expected ',' between arguments")
                args.append(self._parse_assignment())
            self._expect(T.RPAREN, "Expected ')' after arguments")
            return FuncCall(name=tok.value, args=args, line=tok.line, col=tok.col)

        if tok.type is T.LPAREN:
            if self._at(*TYPE_KEYWORDS):
                raise ParseError("Casts are not supported", self._cur())
            expr = self._parse_expr()
            self._expect(T.RPAREN)
            return expr

        raise ParseError("Expected expression", tok)
