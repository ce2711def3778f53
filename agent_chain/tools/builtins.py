"""Built-in tools: calculator and knowledge_search."""

from __future__ import annotations

import ast
import operator

from pydantic import BaseModel, Field

from agent_chain.retrieval.retriever import Retriever
from agent_chain.tools.registry import ToolDef


# ---------------------------------------------------------------------------
# calculator: safe arithmetic over an expression string
# ---------------------------------------------------------------------------

class CalculatorInput(BaseModel):
    expression: str = Field(description="Arithmetic expression, e.g. '2 + 2 * 3'")


_BINARY_OPS = {
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.FloorDiv: operator.floordiv,
    ast.Mod: operator.mod,
    ast.Pow: operator.pow,
}
_UNARY_OPS = {ast.UAdd: operator.pos, ast.USub: operator.neg}
_MAX_EXPONENT = 100


def _evaluate(node: ast.AST) -> float | int:
    if isinstance(node, ast.Expression):
        return _evaluate(node.body)
    if isinstance(node, ast.Constant) and isinstance(node.value, (int, float)):
        return node.value
    if isinstance(node, ast.BinOp) and type(node.op) in _BINARY_OPS:
        left, right = _evaluate(node.left), _evaluate(node.right)
        if isinstance(node.op, ast.Pow) and abs(right) > _MAX_EXPONENT:
            raise ValueError(f"exponent {right} is too large")
        return _BINARY_OPS[type(node.op)](left, right)
    if isinstance(node, ast.UnaryOp) and type(node.op) in _UNARY_OPS:
        return _UNARY_OPS[type(node.op)](_evaluate(node.operand))
    raise ValueError(f"unsupported expression element: {type(node).__name__}")


async def _calculator_handler(inp: CalculatorInput) -> str:
    value = _evaluate(ast.parse(inp.expression, mode="eval"))
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


CALCULATOR_TOOL = ToolDef(
    name="calculator",
    description="Evaluate an arithmetic expression and return the result.",
    input_model=CalculatorInput,
    handler=_calculator_handler,
    timeout=5.0,
)


# ---------------------------------------------------------------------------
# knowledge_search: calls Retriever.retrieve and returns snippets
# ---------------------------------------------------------------------------

class KnowledgeSearchInput(BaseModel):
    query: str
    k: int = Field(default=3, ge=1, le=20)


class KnowledgeSearchOutput(BaseModel):
    snippets: list[str]
    sources: list[str]


def make_retrieval_tool(retriever: Retriever) -> ToolDef:
    """Factory — binds a *Retriever* instance into the tool handler."""

    async def _knowledge_search_handler(inp: KnowledgeSearchInput) -> dict:
        chunks = await retriever.retrieve(inp.query, k=inp.k)
        return {
            "snippets": [c.chunk.text for c in chunks],
            "sources": [c.chunk.source_id for c in chunks],
        }

    return ToolDef(
        name="knowledge_search",
        description="Search the knowledge base for relevant document snippets.",
        input_model=KnowledgeSearchInput,
        output_model=KnowledgeSearchOutput,
        handler=_knowledge_search_handler,
    )
