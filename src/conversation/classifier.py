"""Keyword rule tables for inferring message urgency and topic.

Rules are plain data: an ordered sequence of ``(label, keywords)`` pairs.
``first_match`` walks the table in order and returns the first label whose
keywords appear (case-insensitive substring) in the text, so earlier rows win
ties. Urgency tiers are listed highest first for that reason.
"""

from collections.abc import Sequence

from src.conversation.models import DEFAULT_TOPIC, Urgency

type RuleTable[T: str] = Sequence[tuple[T, tuple[str, ...]]]

URGENCY_RULES: RuleTable[Urgency] = (
    ("critical", ("breach", "attack", "compromise", "malware", "ransomware", "critical", "urgent", "emergency")),
    ("high", ("threat", "suspicious", "alert", "incident", "vulnerability", "exploit")),
    ("medium", ("security", "audit", "compliance", "policy", "review")),
)

TOPIC_RULES: RuleTable[str] = (
    ("incident response", ("incident", "response", "containment", "recovery")),
    ("threat analysis", ("threat", "analysis", "intelligence", "ioc", "indicators")),
    ("compliance", ("compliance", "audit", "framework", "standards", "regulation")),
    ("vulnerability management", ("vulnerability", "patch", "cve", "scanning")),
    ("access control", ("access", "permissions", "authentication", "authorization")),
    ("network security", ("network", "firewall", "intrusion", "traffic")),
    ("malware analysis", ("malware", "virus", "trojan", "payload", "analysis")),
)


def first_match[T: str](text: str, rules: RuleTable[T], default: T) -> T:
    """Return the label of the first rule with a keyword contained in ``text``."""
    lowered = text.lower()
    for label, keywords in rules:
        if any(keyword in lowered for keyword in keywords):
            return label
    return default


def classify_urgency(text: str) -> Urgency:
    return first_match(text, URGENCY_RULES, "low")


def classify_topic(text: str) -> str:
    return first_match(text, TOPIC_RULES, DEFAULT_TOPIC)
