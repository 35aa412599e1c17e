"""Parser for the record declaration DSL."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import ply.yacc as yacc

from structured_tables.parsing.declaration_lexer import DeclarationLexer
from structured_tables.types import (
    Annotation,
    Argument,
    ArrayLiteral,
    BoolLiteral,
    Call,
    CaseDescriptor,
    Expression,
    FieldDescriptor,
    FloatLiteral,
    IntegerLiteral,
    MemberAccess,
    NilLiteral,
    PayloadDescriptor,
    RecordDescriptor,
    Reference,
    Span,
    StringLiteral,
    TypeLiteral,
    TypeRef,
)


@dataclass
class BindingSpec:
    """A single ``name: Type = default`` binding before assembly."""

    name: str
    name_span: Span
    type_ref: TypeRef | None = None
    default: Expression | None = None
    is_computed: bool = False


@dataclass
class FieldDeclSpec:
    """A ``let``/``var`` declaration before attributes are attached."""

    bindings: list[BindingSpec]
    is_mutable: bool
    binding_span: Span
    is_static: bool = False


@dataclass
class CaseDeclSpec:
    """A ``case`` declaration, possibly declaring several cases."""

    cases: list[tuple[str, list[PayloadDescriptor], Span]] = field(default_factory=list)


class DeclarationParser:
    """Parser for record declarations.

    Produces one RecordDescriptor per ``struct``/``enum``/``class``
    declaration, with byte-offset spans for every annotation, argument and
    member.
    """

    tokens = DeclarationLexer.tokens

    def __init__(self) -> None:
        self.lexer = DeclarationLexer()
        self.lexer.build()
        self.parser: yacc.LRParser = None  # type: ignore

    def _span(self, p: yacc.YaccProduction, first: int, last: int | None = None) -> Span:
        """Span from the start of symbol ``first`` to the end of symbol ``last``."""
        start = p.lexspan(first)[0]
        end_start = p.lexspan(last if last is not None else first)[1]
        return Span(start, self.lexer.token_end(end_start))

    # -- Declarations --------------------------------------------------------

    def p_declarations(self, p: yacc.YaccProduction) -> None:
        """declarations : declaration_list"""
        p[0] = p[1]

    def p_declarations_empty(self, p: yacc.YaccProduction) -> None:
        """declarations :"""
        p[0] = []

    def p_declaration_list_single(self, p: yacc.YaccProduction) -> None:
        """declaration_list : declaration"""
        p[0] = [p[1]]

    def p_declaration_list_multiple(self, p: yacc.YaccProduction) -> None:
        """declaration_list : declaration_list declaration"""
        p[0] = p[1] + [p[2]]

    def p_declaration_attributed(self, p: yacc.YaccProduction) -> None:
        """declaration : attribute_list record_header record_body"""
        kind, name = p[2]
        p[0] = self._record(kind, name, tuple(p[1]), p[3], self._span(p, 1, 3))

    def p_declaration_plain(self, p: yacc.YaccProduction) -> None:
        """declaration : record_header record_body"""
        kind, name = p[1]
        p[0] = self._record(kind, name, (), p[2], self._span(p, 1, 2))

    def p_record_header(self, p: yacc.YaccProduction) -> None:
        """record_header : record_keyword IDENTIFIER
                         | record_keyword IDENTIFIER COLON conformance_list"""
        p[0] = (p[1], p[2])

    def p_record_keyword(self, p: yacc.YaccProduction) -> None:
        """record_keyword : STRUCT
                          | ENUM
                          | CLASS"""
        p[0] = p[1]

    def p_conformance_list(self, p: yacc.YaccProduction) -> None:
        """conformance_list : dotted_name
                            | conformance_list COMMA dotted_name"""
        p[0] = None

    def p_record_body(self, p: yacc.YaccProduction) -> None:
        """record_body : LBRACE member_list RBRACE"""
        p[0] = [m for m in p[2] if m is not None]

    def p_record_body_empty(self, p: yacc.YaccProduction) -> None:
        """record_body : LBRACE RBRACE"""
        p[0] = []

    def p_member_list_single(self, p: yacc.YaccProduction) -> None:
        """member_list : member"""
        p[0] = [p[1]]

    def p_member_list_multiple(self, p: yacc.YaccProduction) -> None:
        """member_list : member_list member"""
        p[0] = p[1] + [p[2]]

    def p_member_separator(self, p: yacc.YaccProduction) -> None:
        """member : SEMICOLON"""
        p[0] = None

    def p_member_field(self, p: yacc.YaccProduction) -> None:
        """member : field_decl"""
        p[0] = self._fields(p[1], (), self._span(p, 1))

    def p_member_field_attributed(self, p: yacc.YaccProduction) -> None:
        """member : attribute_list field_decl"""
        p[0] = self._fields(p[2], tuple(p[1]), self._span(p, 1, 2))

    def p_member_case(self, p: yacc.YaccProduction) -> None:
        """member : case_decl"""
        p[0] = self._cases(p[1], ())

    def p_member_case_attributed(self, p: yacc.YaccProduction) -> None:
        """member : attribute_list case_decl"""
        p[0] = self._cases(p[2], tuple(p[1]))

    # -- Attributes ----------------------------------------------------------

    def p_attribute_list_single(self, p: yacc.YaccProduction) -> None:
        """attribute_list : attribute"""
        p[0] = [p[1]]

    def p_attribute_list_multiple(self, p: yacc.YaccProduction) -> None:
        """attribute_list : attribute_list attribute"""
        p[0] = p[1] + [p[2]]

    def p_attribute_bare(self, p: yacc.YaccProduction) -> None:
        """attribute : AT IDENTIFIER"""
        p[0] = Annotation(name=p[2], span=self._span(p, 1, 2))

    def p_attribute_empty_arguments(self, p: yacc.YaccProduction) -> None:
        """attribute : AT IDENTIFIER LPAREN RPAREN"""
        p[0] = Annotation(name=p[2], span=self._span(p, 1, 4))

    def p_attribute_arguments(self, p: yacc.YaccProduction) -> None:
        """attribute : AT IDENTIFIER LPAREN argument_list RPAREN"""
        p[0] = Annotation(name=p[2], arguments=tuple(p[4]), span=self._span(p, 1, 5))

    def p_argument_list_single(self, p: yacc.YaccProduction) -> None:
        """argument_list : argument"""
        p[0] = [p[1]]

    def p_argument_list_multiple(self, p: yacc.YaccProduction) -> None:
        """argument_list : argument_list COMMA argument"""
        p[0] = p[1] + [p[3]]

    def p_argument_positional(self, p: yacc.YaccProduction) -> None:
        """argument : expression"""
        p[0] = Argument(label=None, value=p[1], span=self._span(p, 1))

    def p_argument_labeled(self, p: yacc.YaccProduction) -> None:
        """argument : IDENTIFIER COLON expression"""
        p[0] = Argument(label=p[1], value=p[3], span=self._span(p, 1, 3))

    # -- Fields --------------------------------------------------------------

    def p_field_decl(self, p: yacc.YaccProduction) -> None:
        """field_decl : binding_keyword binding_list"""
        p[0] = FieldDeclSpec(bindings=p[2], is_mutable=p[1] == "var", binding_span=self._span(p, 1))

    def p_field_decl_static(self, p: yacc.YaccProduction) -> None:
        """field_decl : STATIC binding_keyword binding_list"""
        p[0] = FieldDeclSpec(
            bindings=p[3],
            is_mutable=p[2] == "var",
            binding_span=self._span(p, 2),
            is_static=True,
        )

    def p_binding_keyword(self, p: yacc.YaccProduction) -> None:
        """binding_keyword : LET
                           | VAR"""
        p[0] = p[1]

    def p_binding_list_single(self, p: yacc.YaccProduction) -> None:
        """binding_list : binding"""
        p[0] = [p[1]]

    def p_binding_list_multiple(self, p: yacc.YaccProduction) -> None:
        """binding_list : binding_list COMMA binding"""
        p[0] = p[1] + [p[3]]

    def p_binding_name(self, p: yacc.YaccProduction) -> None:
        """binding : IDENTIFIER"""
        p[0] = BindingSpec(name=p[1], name_span=self._span(p, 1))

    def p_binding_typed(self, p: yacc.YaccProduction) -> None:
        """binding : IDENTIFIER COLON type"""
        p[0] = BindingSpec(name=p[1], name_span=self._span(p, 1), type_ref=p[3])

    def p_binding_initialized(self, p: yacc.YaccProduction) -> None:
        """binding : IDENTIFIER EQUALS expression"""
        p[0] = BindingSpec(name=p[1], name_span=self._span(p, 1), default=p[3])

    def p_binding_typed_initialized(self, p: yacc.YaccProduction) -> None:
        """binding : IDENTIFIER COLON type EQUALS expression"""
        p[0] = BindingSpec(name=p[1], name_span=self._span(p, 1), type_ref=p[3], default=p[5])

    def p_binding_computed(self, p: yacc.YaccProduction) -> None:
        """binding : IDENTIFIER COLON type block"""
        p[0] = BindingSpec(name=p[1], name_span=self._span(p, 1), type_ref=p[3], is_computed=True)

    # -- Cases ---------------------------------------------------------------

    def p_case_decl(self, p: yacc.YaccProduction) -> None:
        """case_decl : CASE case_list"""
        p[0] = CaseDeclSpec(cases=p[2])

    def p_case_list_single(self, p: yacc.YaccProduction) -> None:
        """case_list : case_item"""
        p[0] = [p[1]]

    def p_case_list_multiple(self, p: yacc.YaccProduction) -> None:
        """case_list : case_list COMMA case_item"""
        p[0] = p[1] + [p[3]]

    def p_case_item_bare(self, p: yacc.YaccProduction) -> None:
        """case_item : IDENTIFIER"""
        p[0] = (p[1], [], self._span(p, 1))

    def p_case_item_empty(self, p: yacc.YaccProduction) -> None:
        """case_item : IDENTIFIER LPAREN RPAREN"""
        p[0] = (p[1], [], self._span(p, 1, 3))

    def p_case_item_payloads(self, p: yacc.YaccProduction) -> None:
        """case_item : IDENTIFIER LPAREN payload_list RPAREN"""
        p[0] = (p[1], p[3], self._span(p, 1, 4))

    def p_payload_list_single(self, p: yacc.YaccProduction) -> None:
        """payload_list : payload"""
        p[0] = [p[1]]

    def p_payload_list_multiple(self, p: yacc.YaccProduction) -> None:
        """payload_list : payload_list COMMA payload"""
        p[0] = p[1] + [p[3]]

    def p_payload(self, p: yacc.YaccProduction) -> None:
        """payload : type"""
        p[0] = PayloadDescriptor(type_ref=p[1], span=self._span(p, 1))

    def p_payload_default(self, p: yacc.YaccProduction) -> None:
        """payload : type EQUALS expression"""
        p[0] = PayloadDescriptor(type_ref=p[1], default=p[3], span=self._span(p, 1, 3))

    def p_payload_labeled(self, p: yacc.YaccProduction) -> None:
        """payload : IDENTIFIER COLON type"""
        p[0] = PayloadDescriptor(type_ref=p[3], label=p[1], span=self._span(p, 1, 3))

    def p_payload_labeled_default(self, p: yacc.YaccProduction) -> None:
        """payload : IDENTIFIER COLON type EQUALS expression"""
        p[0] = PayloadDescriptor(
            type_ref=p[3], label=p[1], default=p[5], span=self._span(p, 1, 5)
        )

    # -- Types ---------------------------------------------------------------

    def p_type(self, p: yacc.YaccProduction) -> None:
        """type : base_type"""
        p[0] = p[1]

    def p_type_optional(self, p: yacc.YaccProduction) -> None:
        """type : base_type QUESTION"""
        p[0] = p[1].optional()

    def p_type_variadic(self, p: yacc.YaccProduction) -> None:
        """type : base_type ELLIPSIS"""
        p[0] = TypeRef(name=p[1].name, is_array=p[1].is_array, is_variadic=True)

    def p_base_type_named(self, p: yacc.YaccProduction) -> None:
        """base_type : dotted_name"""
        p[0] = TypeRef(name=p[1])

    def p_base_type_array(self, p: yacc.YaccProduction) -> None:
        """base_type : LBRACKET type RBRACKET"""
        p[0] = TypeRef(name=str(p[2]), is_array=True)

    def p_dotted_name_single(self, p: yacc.YaccProduction) -> None:
        """dotted_name : IDENTIFIER"""
        p[0] = p[1]

    def p_dotted_name_multiple(self, p: yacc.YaccProduction) -> None:
        """dotted_name : dotted_name DOT IDENTIFIER"""
        p[0] = f"{p[1]}.{p[3]}"

    # -- Expressions ---------------------------------------------------------

    def p_expression(self, p: yacc.YaccProduction) -> None:
        """expression : literal
                      | postfix
                      | array_literal"""
        p[0] = p[1]

    def p_expression_member(self, p: yacc.YaccProduction) -> None:
        """expression : DOT IDENTIFIER"""
        p[0] = MemberAccess(p[2])

    def p_literal_string(self, p: yacc.YaccProduction) -> None:
        """literal : STRING"""
        p[0] = StringLiteral(p[1])

    def p_literal_integer(self, p: yacc.YaccProduction) -> None:
        """literal : INTEGER"""
        p[0] = IntegerLiteral(p[1])

    def p_literal_float(self, p: yacc.YaccProduction) -> None:
        """literal : FLOAT"""
        p[0] = FloatLiteral(p[1])

    def p_literal_bool(self, p: yacc.YaccProduction) -> None:
        """literal : TRUE
                   | FALSE"""
        p[0] = BoolLiteral(p[1] == "true")

    def p_literal_nil(self, p: yacc.YaccProduction) -> None:
        """literal : NIL"""
        p[0] = NilLiteral()

    def p_postfix_name(self, p: yacc.YaccProduction) -> None:
        """postfix : IDENTIFIER"""
        p[0] = Reference(p[1])

    def p_postfix_member(self, p: yacc.YaccProduction) -> None:
        """postfix : postfix DOT IDENTIFIER"""
        base = p[1]
        if p[3] == "self" and isinstance(base, Reference):
            p[0] = TypeLiteral(TypeRef(base.path))
        else:
            p[0] = Reference(f"{base.source()}.{p[3]}")

    def p_postfix_optional_type(self, p: yacc.YaccProduction) -> None:
        """postfix : postfix QUESTION DOT IDENTIFIER"""
        base = p[1]
        if p[4] == "self" and isinstance(base, Reference):
            p[0] = TypeLiteral(TypeRef(base.path, is_optional=True))
        else:
            p[0] = Reference(f"{base.source()}?.{p[4]}")

    def p_postfix_call(self, p: yacc.YaccProduction) -> None:
        """postfix : postfix LPAREN RPAREN"""
        p[0] = Call(p[1].source())

    def p_postfix_call_arguments(self, p: yacc.YaccProduction) -> None:
        """postfix : postfix LPAREN argument_list RPAREN"""
        p[0] = Call(p[1].source(), tuple(p[3]))

    def p_array_literal_empty(self, p: yacc.YaccProduction) -> None:
        """array_literal : LBRACKET RBRACKET"""
        p[0] = ArrayLiteral()

    def p_array_literal(self, p: yacc.YaccProduction) -> None:
        """array_literal : LBRACKET expression_list RBRACKET
                         | LBRACKET expression_list COMMA RBRACKET"""
        p[0] = ArrayLiteral(tuple(p[2]))

    def p_expression_list_single(self, p: yacc.YaccProduction) -> None:
        """expression_list : expression"""
        p[0] = [p[1]]

    def p_expression_list_multiple(self, p: yacc.YaccProduction) -> None:
        """expression_list : expression_list COMMA expression"""
        p[0] = p[1] + [p[3]]

    # -- Accessor blocks (skipped) -------------------------------------------

    def p_block(self, p: yacc.YaccProduction) -> None:
        """block : LBRACE RBRACE
                 | LBRACE block_items RBRACE"""
        p[0] = None

    def p_block_items(self, p: yacc.YaccProduction) -> None:
        """block_items : block_item
                       | block_items block_item"""
        p[0] = None

    def p_block_item(self, p: yacc.YaccProduction) -> None:
        """block_item : block
                      | AT
                      | IDENTIFIER
                      | STRING
                      | INTEGER
                      | FLOAT
                      | LBRACKET
                      | RBRACKET
                      | LPAREN
                      | RPAREN
                      | COLON
                      | COMMA
                      | EQUALS
                      | ELLIPSIS
                      | DOT
                      | QUESTION
                      | SEMICOLON
                      | OPERATOR
                      | STRUCT
                      | ENUM
                      | CLASS
                      | CASE
                      | LET
                      | VAR
                      | STATIC
                      | TRUE
                      | FALSE
                      | NIL"""
        p[0] = None

    def p_error(self, p: yacc.YaccProduction) -> None:
        if p:
            raise SyntaxError(f"Syntax error at '{p.value}' (position {p.lexpos})")
        else:
            raise SyntaxError("Syntax error at end of input")

    # -- Assembly ------------------------------------------------------------

    def _fields(
        self, decl: FieldDeclSpec, annotations: tuple[Annotation, ...], span: Span
    ) -> list[FieldDescriptor]:
        first = decl.bindings[0]
        return [
            FieldDescriptor(
                name=first.name,
                declared_type=first.type_ref,
                annotations=annotations,
                default=first.default,
                is_mutable=decl.is_mutable,
                is_static=decl.is_static,
                is_computed=first.is_computed,
                binding_count=len(decl.bindings),
                span=span,
                binding_span=decl.binding_span,
                name_span=first.name_span,
            )
        ]

    def _cases(
        self, decl: CaseDeclSpec, annotations: tuple[Annotation, ...]
    ) -> list[CaseDescriptor]:
        return [
            CaseDescriptor(name=name, payloads=tuple(payloads), annotations=annotations, span=span)
            for name, payloads, span in decl.cases
        ]

    def _record(
        self,
        kind: str,
        name: str,
        annotations: tuple[Annotation, ...],
        members: list[list[FieldDescriptor] | list[CaseDescriptor]],
        span: Span,
    ) -> RecordDescriptor:
        fields: list[FieldDescriptor] = []
        cases: list[CaseDescriptor] = []
        for group in members:
            for member in group:
                if isinstance(member, CaseDescriptor):
                    cases.append(member)
                else:
                    fields.append(member)
        return RecordDescriptor(
            name=name,
            kind=kind,
            annotations=annotations,
            fields=tuple(fields),
            cases=tuple(cases),
            span=span,
        )

    def build(self, **kwargs: Any) -> None:
        """Build the parser."""
        self.parser = yacc.yacc(module=self, start="declarations", **kwargs)

    def parse(self, data: str) -> list[RecordDescriptor]:
        """Parse declarations and return one descriptor per record."""
        if self.parser is None:
            self.build(debug=False, write_tables=False)

        records = self.parser.parse(data, lexer=self.lexer, tracking=True)
        if records is None:
            records = []
        return records
