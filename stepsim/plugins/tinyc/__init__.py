"""
Tiny C front end for the tiny8 demo processor.

Pipeline:
    C source -> Lexer -> Parser -> AST -> CodeGenerator -> [Instr]

The tiny8 plugin turns the resulting Instr list into instruction records.
"""

from typing import List

from .lexer import Lexer, LexerError, Token, TokenType
from .parser import Parser, ParseError
from .codegen import CodeGenerator, CodeGenError, Instr


def compile_source(source: str) -> List[Instr]:
    """Compile C source into resolved tiny8 instructions.

    Raises a CompileError subclass (LexerError, ParseError, CodeGenError)
    carrying the source line/column.
    """
    tokens = Lexer(source).tokenize()
    ast = Parser(tokens).parse()
    return CodeGenerator().generate(ast)


__all__ = [
    "compile_source",
    "Lexer", "LexerError", "Token", "TokenType",
    "Parser", "ParseError",
    "CodeGenerator", "CodeGenError", "Instr",
]
