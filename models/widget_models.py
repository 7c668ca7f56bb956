"""
Data Models for Custom Widgets
==============================

A tool idea suggested for a post. The widget built from it is plain HTML
text and needs no model of its own.
"""

from dataclasses import dataclass

TOOL_ICONS = ("calculator", "chart", "list", "idea")


@dataclass(frozen=True)
class ToolIdea:
    title: str
    description: str
    icon: str = "idea"
