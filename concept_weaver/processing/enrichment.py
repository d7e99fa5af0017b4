"""Model-backed enrichment: exam-style summary and concept map.

Both calls go through litellm against the same model. The summary is returned
as the model wrote it. The concept map is requested as JSON only, but the
response is parsed defensively: the outermost braces are sliced out, decoded,
and the graph is sanitised so that every edge points at a known node.
"""

from __future__ import annotations

import json
import logging
import os
import threading
from typing import Any, Dict, List, Optional

import litellm

from .errors import EnrichmentConfigurationError, EnrichmentError, ParseContractViolation
from .models import ConceptEdge, ConceptMap, ConceptNode, NodeType

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

DEFAULT_MODEL = "cohere_chat/command-a-03-2025"
DEFAULT_API_KEY_ENV = "COHERE_API_KEY"

_SUMMARY_PROMPT = """\
You are an academic assistant.

Create a **detailed, well-structured summary** of the following content suitable for:
- Exam preparation
- Conceptual understanding
- Revision notes

Requirements:
- Use headings and subheadings
- Explain each concept clearly in 2-4 lines
- Do NOT over-compress
- Preserve important definitions and examples
- Use bullet points where helpful

Content:
{content}
"""

_CONCEPT_MAP_PROMPT = """\
Return a concept map derived from the content below.

You MUST respond with a valid JSON object only.
Do not include any explanation, heading, or commentary.

Schema:
{{
  "nodes": [
    {{ "id": "A", "label": "Main Topic", "type": "concept" }}
  ],
  "edges": [
    {{ "id": "e1", "source": "A", "target": "B", "label": "relates to" }}
  ]
}}

Rules:
- "type" is one of "concept", "detail", "example"
- Every edge "source" and "target" must be the id of a node
- Response must start with '{{' and end with '}}'
- No markdown
- No extra text
- No comments

Content:
{content}
"""

_NODE_TYPES = {member.value: member for member in NodeType}


def build_summary_prompt(text: str, max_chars: Optional[int] = None) -> str:
    return _SUMMARY_PROMPT.format(content=text[:max_chars] if max_chars else text)


def build_concept_map_prompt(text: str, max_chars: Optional[int] = None) -> str:
    return _CONCEPT_MAP_PROMPT.format(content=text[:max_chars] if max_chars else text)


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value).strip()


def parse_concept_map(raw: Optional[str]) -> ConceptMap:
    """
    Decode a concept map from a model response that was supposed to be JSON only.

    Raises:
        ParseContractViolation: no brace-delimited object, undecodable JSON, or a
            payload whose nodes/edges are not lists.
    """
    text = (raw or "").strip()
    start = text.find("{")
    end = text.rfind("}")
    if start == -1 or end == -1 or end < start:
        raise ParseContractViolation("No JSON boundaries found in concept map response", raw_response=text)

    try:
        payload = json.loads(text[start:end + 1])
    except (json.JSONDecodeError, RecursionError) as exc:
        raise ParseContractViolation(f"Concept map is not valid JSON: {exc}", raw_response=text) from exc

    if not isinstance(payload, dict):
        raise ParseContractViolation("Concept map must be a JSON object", raw_response=text)
    raw_nodes = payload.get("nodes") or []
    raw_edges = payload.get("edges") or []
    if not isinstance(raw_nodes, list) or not isinstance(raw_edges, list):
        raise ParseContractViolation("Concept map nodes and edges must be lists", raw_response=text)

    return sanitize_concept_map(raw_nodes, raw_edges)


def sanitize_concept_map(raw_nodes: List[Any], raw_edges: List[Any]) -> ConceptMap:
    nodes: List[ConceptNode] = []
    seen = set()
    for index, raw_node in enumerate(raw_nodes):
        if not isinstance(raw_node, dict):
            continue
        node_id = _as_text(raw_node.get("id")) or f"node-{index}"
        if node_id in seen:
            continue
        seen.add(node_id)
        label = _as_text(raw_node.get("label")) or f"Concept {index + 1}"
        node_type = _NODE_TYPES.get(_as_text(raw_node.get("type")).lower(), NodeType.CONCEPT)
        nodes.append(ConceptNode(id=node_id, label=label, type=node_type))

    edges: List[ConceptEdge] = []
    for index, raw_edge in enumerate(raw_edges):
        if not isinstance(raw_edge, dict):
            continue
        # "from"/"to" is the shape older prompts asked for
        source = _as_text(raw_edge.get("source", raw_edge.get("from")))
        target = _as_text(raw_edge.get("target", raw_edge.get("to")))
        if source not in seen or target not in seen:
            continue
        edges.append(
            ConceptEdge(
                id=_as_text(raw_edge.get("id")) or f"edge-{index}",
                source=source,
                target=target,
                label=_as_text(raw_edge.get("label")),
            )
        )

    return ConceptMap(nodes=nodes, edges=edges)


class EnrichmentClient:
    """
    Process-wide wrapper around the hosted model.

    The credential check runs once, on first use, and is shared by every job;
    a missing key fails loudly because no job can succeed without it.
    Provider errors are re-raised as EnrichmentError with the provider message.
    """

    def __init__(
        self,
        model: str = DEFAULT_MODEL,
        api_key_env: str = DEFAULT_API_KEY_ENV,
        max_tokens: int = 1000,
        timeout: Optional[float] = 120.0,
        summary_input_chars: Optional[int] = 100_000,
        concept_input_chars: Optional[int] = 10_000,
    ):
        self.model = model
        self.api_key_env = api_key_env
        self.max_tokens = max_tokens
        self.timeout = timeout
        self.summary_input_chars = summary_input_chars
        self.concept_input_chars = concept_input_chars
        self._api_key: Optional[str] = None
        self._init_lock = threading.Lock()

    def _ensure_ready(self) -> str:
        if self._api_key is not None:
            return self._api_key
        with self._init_lock:
            if self._api_key is None:
                api_key = os.getenv(self.api_key_env)
                if not api_key:
                    logger.error("%s is not set; enrichment is unavailable", self.api_key_env)
                    raise EnrichmentConfigurationError(f"{self.api_key_env} is not set in environment")
                self._api_key = api_key
        return self._api_key

    def _complete(self, prompt: str) -> str:
        api_key = self._ensure_ready()
        kwargs: Dict[str, Any] = {
            "model": self.model,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self.max_tokens,
            "api_key": api_key,
        }
        if self.timeout:
            kwargs["timeout"] = self.timeout
        try:
            response = litellm.completion(**kwargs)
        except Exception as exc:
            raise EnrichmentError(str(exc) or exc.__class__.__name__) from exc
        try:
            return response.choices[0].message.content or ""
        except (AttributeError, IndexError, KeyError, TypeError) as exc:
            raise EnrichmentError(f"Malformed response from {self.model}: {exc!r}") from exc

    def summarize(self, text: str) -> str:
        summary = self._complete(build_summary_prompt(text, self.summary_input_chars))
        logger.debug("Summary generated (%d characters)", len(summary))
        return summary

    def map_concepts(self, text: str) -> ConceptMap:
        raw = self._complete(build_concept_map_prompt(text, self.concept_input_chars))
        try:
            concept_map = parse_concept_map(raw)
        except ParseContractViolation:
            logger.debug("Concept map response violated the JSON contract:\n%s", raw)
            raise
        logger.debug(
            "Concept map parsed with %d nodes and %d edges", len(concept_map.nodes), len(concept_map.edges)
        )
        return concept_map
