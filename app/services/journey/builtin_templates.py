"""
System journey map templates.

Seeded into ``journey_map_templates`` with ``is_system=True`` by
``flask seed-journey-templates`` (see journey_map_service.seed_system_templates).
"""

from __future__ import annotations


def _stage(stage_id, name, bg, fg):
    return {"id": stage_id, "name": name, "style": {"bg_color": bg, "text_color": fg}}


BLUE = ("#eff6ff", "#1e40af")
GREEN = ("#f0fdf4", "#166534")
YELLOW = ("#fefce8", "#854d0e")
PURPLE = ("#fdf4ff", "#86198f")
SKY = ("#f0f9ff", "#0c4a6e")
RED = ("#fef2f2", "#991b1b")


SYSTEM_TEMPLATES = [
    {
        "title": "Customer Onboarding",
        "description": "Awareness > Sign-Up > Activation > First Value > Retention",
        "category": "onboarding",
        "data": {
            "title": "Customer Onboarding Journey",
            "stages": [
                _stage("st_1", "Awareness", *BLUE),
                _stage("st_2", "Sign-Up", *GREEN),
                _stage("st_3", "Activation", *YELLOW),
                _stage("st_4", "First Value", *PURPLE),
                _stage("st_5", "Retention", *SKY),
            ],
            "sections": [
                {"id": "sec_1", "type": "text", "title": "User Goals", "cells": {
                    "st_1": {"value": "Discover solution"},
                    "st_2": {"value": "Create account"},
                    "st_3": {"value": "Complete setup"},
                    "st_4": {"value": "Achieve first success"},
                    "st_5": {"value": "Integrate into workflow"},
                }},
                {"id": "sec_2", "type": "touchpoints", "title": "Touchpoints", "cells": {
                    "st_1": {"items": [
                        {"label": "Website", "color": "#3b82f6", "category": "Web"},
                        {"label": "Social Ads", "color": "#8b5cf6", "category": "Social"},
                    ]},
                    "st_2": {"items": [{"label": "Sign-up Form", "color": "#10b981", "category": "Web"}]},
                    "st_3": {"items": [{"label": "Onboarding Wizard", "color": "#f59e0b", "category": "In-app"}]},
                    "st_4": {"items": [{"label": "Dashboard", "color": "#ec4899", "category": "In-app"}]},
                    "st_5": {"items": [
                        {"label": "Email", "color": "#6366f1", "category": "Email"},
                        {"label": "In-app", "color": "#14b8a6", "category": "In-app"},
                    ]},
                }},
                {"id": "sec_3", "type": "sentiment_graph", "title": "Customer Emotion", "cells": {
                    "st_1": {"value": 1}, "st_2": {"value": 2}, "st_3": {"value": -1},
                    "st_4": {"value": 4}, "st_5": {"value": 3},
                }},
                {"id": "sec_4", "type": "pain_point", "title": "Pain Points", "cells": {
                    "st_1": {"value": "Too many options", "severity": 2},
                    "st_3": {"value": "Complex setup process", "severity": 4},
                }},
            ],
        },
    },
    {
        "title": "Support Journey",
        "description": "Issue > Contact Support > Resolution > Follow-Up",
        "category": "support",
        "data": {
            "title": "Support Journey",
            "stages": [
                _stage("st_1", "Issue Occurs", *RED),
                _stage("st_2", "Contact Support", *BLUE),
                _stage("st_3", "Resolution", *GREEN),
                _stage("st_4", "Follow-Up", *YELLOW),
            ],
            "sections": [
                {"id": "sec_1", "type": "text", "title": "Customer Actions", "cells": {
                    "st_1": {"value": "Identify problem"},
                    "st_2": {"value": "Submit ticket / call"},
                    "st_3": {"value": "Work with agent"},
                    "st_4": {"value": "Rate experience"},
                }},
                {"id": "sec_2", "type": "sentiment_graph", "title": "Emotion", "cells": {
                    "st_1": {"value": -4}, "st_2": {"value": -2}, "st_3": {"value": 2}, "st_4": {"value": 3},
                }},
                {"id": "sec_3", "type": "touchpoints", "title": "Channels", "cells": {
                    "st_2": {"items": [
                        {"label": "Phone", "color": "#10b981", "category": "Phone"},
                        {"label": "Chat", "color": "#3b82f6", "category": "Chat"},
                        {"label": "Email", "color": "#6366f1", "category": "Email"},
                    ]},
                }},
            ],
        },
    },
    {
        "title": "Purchase Journey",
        "description": "Need Recognition > Research > Evaluation > Purchase > Post-Purchase",
        "category": "sales",
        "data": {
            "title": "Purchase Journey",
            "stages": [
                _stage("st_1", "Need Recognition", *PURPLE),
                _stage("st_2", "Research", *BLUE),
                _stage("st_3", "Evaluation", *YELLOW),
                _stage("st_4", "Purchase", *GREEN),
                _stage("st_5", "Post-Purchase", *SKY),
            ],
            "sections": [
                {"id": "sec_1", "type": "goals", "title": "User Goals", "cells": {
                    "st_1": {"items": ["Identify need"]},
                    "st_2": {"items": ["Find options"]},
                    "st_3": {"items": ["Compare alternatives"]},
                    "st_4": {"items": ["Complete purchase"]},
                    "st_5": {"items": ["Get value from product"]},
                }},
                {"id": "sec_2", "type": "sentiment_graph", "title": "Customer Emotion", "cells": {
                    "st_1": {"value": 0}, "st_2": {"value": 1}, "st_3": {"value": -1},
                    "st_4": {"value": 4}, "st_5": {"value": 3},
                }},
                {"id": "sec_3", "type": "opportunity", "title": "Opportunities", "cells": {
                    "st_3": {"value": "Side-by-side comparison page", "impact": 4},
                    "st_5": {"value": "Post-purchase onboarding email", "impact": 3},
                }},
            ],
        },
    },
]
