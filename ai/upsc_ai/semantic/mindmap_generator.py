from __future__ import annotations

import os
import time
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from upsc_ai.errors import InputValidationError
from upsc_ai.providers import LLMClient, AIResponse, Tier
from upsc_ai.utils import get_logger, log_mindmap_generation, log_parse_fallback
from .llm_parser import ParseFailure, ParseTier, extract_json_object

LOG = get_logger()

MINDMAP_MAX_DEPTH = int(os.getenv('MINDMAP_MAX_DEPTH', '4'))
MINDMAP_MAX_NODES = int(os.getenv('MINDMAP_MAX_NODES', '200'))
MINDMAP_TEMPERATURE = float(os.getenv('MINDMAP_TEMPERATURE', '0.7'))
MINDMAP_MAX_TOPIC_LENGTH = int(os.getenv('MINDMAP_MAX_TOPIC_LENGTH', '200'))


class MindmapValidationError(InputValidationError):
    pass


class MindMapNode(BaseModel):
    name: str
    children: Optional[List['MindMapNode']] = Field(default=None)

    def count(self) -> int:
        return 1 + sum(c.count() for c in (self.children or []))

    def depth(self) -> int:
        return 1 + max((c.depth() for c in (self.children or [])), default=0)


MindMapNode.model_rebuild()


def fallback_mindmap(topic: str) -> MindMapNode:
    def branch(name, leaves):
        return MindMapNode(name=name, children=[MindMapNode(name=l) for l in leaves])

    return MindMapNode(name=topic, children=[
        branch('Introduction', ['Overview', 'Key concepts']),
        branch('Main aspects', ['Important points', 'Details']),
        branch('UPSC relevance', ['Previous year questions', 'Expected questions']),
    ])


def _node_name(raw: dict) -> str:
    name = raw.get('name')
    if name is None:
        name = raw.get('label') or raw.get('title')
    name = '' if name is None else str(name).strip()
    return name or 'Untitled'


def _build_node(raw: dict, level: int, budget: List[int]) -> MindMapNode:
    budget[0] -= 1
    node = MindMapNode(name=_node_name(raw))
    children = raw.get('children')
    if level >= MINDMAP_MAX_DEPTH or not isinstance(children, list):
        return node
    built = []
    for child in children:
        if budget[0] <= 0:
            break
        if isinstance(child, dict):
            built.append(_build_node(child, level + 1, budget))
    if built:
        node.children = built
    return node


def normalize_mindmap(data: dict, topic: str) -> MindMapNode:
    """Coerce a decoded object into a bounded tree rooted at ``topic``."""
    root = _build_node(data, 1, [MINDMAP_MAX_NODES])
    root.name = topic
    return root


def parse_mindmap(text: str, topic: str) -> Tuple[MindMapNode, ParseTier]:
    try:
        data, tier = extract_json_object(text)
    except ParseFailure:
        return fallback_mindmap(topic), ParseTier.FALLBACK
    root = normalize_mindmap(data, topic)
    if not root.children:
        return fallback_mindmap(topic), ParseTier.FALLBACK
    return root, tier


class MindmapGenerator:
    _instance = None

    def __init__(self, client: Optional[LLMClient] = None):
        self.client = client or LLMClient.get_instance()

    @classmethod
    def get_instance(cls) -> 'MindmapGenerator':
        if cls._instance is None:
            cls._instance = MindmapGenerator()
        return cls._instance

    def _build_prompt(self, topic: str, subject: Optional[str]) -> str:
        return (
            f'Create a comprehensive hierarchical mind map for the UPSC topic: "{topic}" (Subject: {subject or "General"}).\n\n'
            'Generate a JSON structure with the following format:\n'
            f'{{"name": "{topic}", "children": [{{"name": "Main Subtopic 1", "children": [{{"name": "Detail 1.1"}}]}}]}}\n\n'
            'Requirements:\n'
            '1. Include 4-6 main subtopics\n'
            '2. Each subtopic should have 2-4 children with key details\n'
            '3. Focus on UPSC-relevant points\n'
            '4. Return ONLY valid JSON, no markdown or explanation'
        )

    def validate_request(self, topic: Optional[str]) -> None:
        if not topic or not str(topic).strip():
            raise MindmapValidationError('Topic is required')
        if len(topic) > MINDMAP_MAX_TOPIC_LENGTH:
            raise MindmapValidationError(f'topic must be at most {MINDMAP_MAX_TOPIC_LENGTH} characters')

    async def request(self, topic: str, subject: Optional[str] = None, request_id: Optional[str] = None) -> AIResponse:
        return await self.client.complete(self._build_prompt(topic, subject), tier=Tier.SMART, temperature=MINDMAP_TEMPERATURE, request_id=request_id)

    def parse(self, response: AIResponse, topic: str, request_id: Optional[str] = None, started: Optional[float] = None):
        root, tier = parse_mindmap(response.text, topic)
        if tier != ParseTier.STRICT:
            log_parse_fallback('mindmap', tier.value, request_id=request_id)
        duration_ms = int((time.time() - started) * 1000) if started else 0
        log_mindmap_generation(request_id, topic, root.count(), tier.value, duration_ms)
        return root, tier
