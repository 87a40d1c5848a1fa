"""Prompt templates for customer request enrichment."""

from __future__ import annotations

from collections.abc import Mapping

ISSUE_STRUCTURE_SYSTEM_PROMPT = (
    "You are a technical product manager. Always respond with valid JSON only, "
    "no additional text or markdown formatting."
)
CREATION_SYSTEM_PROMPT = (
    "You are a customer support assistant. Write friendly, professional messages."
)
RESOLUTION_SYSTEM_PROMPT = (
    "Eres un asistente de atención al cliente. Escribe mensajes claros y útiles en "
    "español explicando soluciones técnicas en términos simples."
)
_BUG_HINTS = ("bug", "error")


def issue_structure_prompt(
    *,
    content: str,
    request_type: str,
    metadata: Mapping[str, object] | None = None,
) -> str:
    lines = [
        f"You are a technical product manager helping to convert customer {request_type} "
        "reports into well-structured Linear issues.",
        "",
        "Customer Request:",
        content,
    ]
    if metadata:
        if metadata.get("env"):
            lines.append(f"Environment: {metadata['env']}")
        if metadata.get("app_version"):
            lines.append(f"App Version: {metadata['app_version']}")
    lines.extend(
        [
            "",
            f"Please analyze this {request_type} report and provide a structured Linear issue "
            "in JSON format with the following fields:",
            "- title: A concise, descriptive title (max 100 characters)",
            "- description: A detailed description with context, steps to reproduce (for bugs), "
            "or implementation details (for features)",
            '- labels: An array of relevant label names (e.g., ["bug", "frontend", "ui"])',
            "- priority: 0 = No priority, 1 = Urgent, 2 = High, 3 = Medium, 4 = Low",
            "",
            "Return ONLY valid JSON in this exact format:",
            '{"title": "...", "description": "...", "labels": ["..."], "priority": 2}',
        ]
    )
    return "\n".join(lines)


def creation_message_prompt(
    *,
    user_name: str | None,
    request_type: str,
    summary: str,
    identifier: str,
) -> str:
    return "\n".join(
        [
            "Generate a friendly, concise confirmation message for a customer who just "
            f"reported a {request_type}.",
            "",
            f"Customer name: {user_name or 'Customer'}",
            f"Issue identifier: {identifier}",
            f"Summary: {summary}",
            "",
            "Write a brief, professional message (2-3 sentences) that:",
            f"1. Thanks them for reporting the {request_type}",
            "2. Confirms we've created an internal ticket (mention the identifier)",
            "3. Assures them we'll keep them posted",
            "",
            "Keep it warm but professional. Return ONLY the message text, no quotes or "
            "additional formatting.",
        ]
    )


def resolution_message_prompt(
    *,
    user_name: str | None,
    original_content: str,
    latest_comment: str | None,
    identifier: str,
) -> str:
    lowered = original_content.lower()
    outcome = (
        "error ha sido corregido"
        if any(hint in lowered for hint in _BUG_HINTS)
        else "solicitud ha sido implementada"
    )
    lines = [
        "Genera un mensaje claro y conciso en español informando a un cliente que su "
        "solicitud ha sido resuelta.",
        "",
        f"Nombre del cliente: {user_name or 'Cliente'}",
        f"Solicitud original: {original_content}",
        f"Identificador del issue: {identifier}",
    ]
    if latest_comment:
        lines.extend(["", f"Explicación del desarrollador: {latest_comment}"])
    lines.extend(
        [
            "",
            "Escribe un mensaje breve (3-4 oraciones) en español que:",
            f"1. Confirme que su {outcome}",
            "2. Explique dónde encontrarlo o cómo usarlo (basado en la explicación del "
            "desarrollador si se proporciona)",
            "3. Agradezca su paciencia",
            "",
            "Mantén el mensaje claro, útil y profesional. Devuelve SOLO el texto del "
            "mensaje, sin comillas ni formato adicional.",
        ]
    )
    return "\n".join(lines)
