"""
Classifier Node - single-shot categorical routing.

The model is asked for exactly one label out of the configured categories
plus ``Unclassified``. Its raw answer is matched case-insensitively (ignoring
surrounding whitespace, quotes and a trailing period); anything else counts as
``Unclassified``. Only edges whose source handle equals the chosen category
are followed. No matching edge is a dead end, not an error.

The category is the node's recorded output; children receive the text that was
classified.
"""

import logging

from g8n.errors import G8nError
from g8n.graph.model import UNCLASSIFIED, ClassifierNode
from g8n.graph.node import NodeContext, NodeResult

logger = logging.getLogger(__name__)

CLASSIFIER_ERROR_OUTPUT = "Error"
CLASSIFIER_SYSTEM = (
    "You are a text classifier. Reply with exactly one category label from the "
    "list you are given and nothing else."
)


def build_classifier_prompt(node: ClassifierNode, text: str) -> str:
    config = node.config
    labels = [*config.categories, UNCLASSIFIED]
    parts = [
        "Classify the input into exactly one of these categories:",
        *(f"- {label}" for label in labels),
        f"If none of the categories fit, answer {UNCLASSIFIED}.",
    ]
    if config.instructions:
        parts.extend(["", config.instructions])
    if config.examples:
        parts.extend(["", "Examples:"])
        for example in config.examples:
            parts.append(f"Input: {example.text}\nCategory: {example.category}")
    parts.extend(["", f"Input: {text}", "Category:"])
    return "\n".join(parts)


def match_category(raw: str, categories: list[str]) -> str:
    """Map the model's raw answer onto a configured category or Unclassified."""
    cleaned = raw.strip().strip("\"'`").strip().rstrip(".").strip().lower()
    for category in categories:
        if cleaned == category.strip().lower():
            return category
    return UNCLASSIFIED


class ClassifierNodeHandler:
    """Runs a ``classifier`` node."""

    async def execute(self, ctx: NodeContext) -> NodeResult:
        node: ClassifierNode = ctx.node
        text = ctx.input_text
        model = node.config.model or ctx.config.model

        try:
            response = await ctx.llm.generate(
                build_classifier_prompt(node, text),
                model=model,
                system=CLASSIFIER_SYSTEM,
                temperature=0.0,
            )
        except G8nError as e:
            # Branch stops here; the rest of the run carries on
            logger.error(f"❌ Classifier '{node.id}' could not reach the model: {e.message}")
            return NodeResult(
                output=CLASSIFIER_ERROR_OUTPUT,
                next_node_ids=[],
                error=e.message,
                forward=text,
                metadata={"error_code": e.error_code},
            )

        category = match_category(response.text, node.config.categories)
        next_ids = ctx.graph.downstream_ids(node.id, category)
        if not next_ids:
            logger.info(f"Classifier '{node.id}' chose '{category}' with no outgoing edge; branch ends")
        else:
            logger.info(f"Classifier '{node.id}' chose '{category}' → {', '.join(next_ids)}")

        return NodeResult(
            output=category,
            next_node_ids=next_ids,
            tokens_used=response.tokens_used,
            forward=text,
            metadata={"raw": response.text},
        )
