from __future__ import annotations

import json

REQUIRED_FIELDS: tuple[str, ...] = (
    "shortSummary",
    "extendedSummary",
    "associations",
    "mermaidMap",
    "story",
)

_EXAMPLE_PAYLOAD = {
    "shortSummary": "Resumen ejecutivo conciso de 3-5 lineas que capture la esencia del tema",
    "extendedSummary": (
        "## Idea central\n- Punto con informacion detallada y enriquecida\n"
        "## Contexto\n- Punto con contexto historico o cientifico\n"
        "### Aplicaciones\n- Punto con aplicaciones practicas"
    ),
    "associations": [
        {
            "concept": "Concepto dificil de recordar",
            "association": "Asociacion verosimil y memorable con algo cotidiano",
            "mnemonic": "Regla mnemotecnica o historia corta para memorizar",
        }
    ],
    "mermaidMap": (
        "mindmap\n  root((Titulo))\n    Concepto1\n      Subconcepto1a\n"
        "      Subconcepto1b\n    Concepto2\n      Subconcepto2a"
    ),
    "story": "Historia narrativa verosimil de 3-5 parrafos que integre los conceptos principales",
}


def build_learning_prompt(title: str, content: str) -> str:
    example = json.dumps(_EXAMPLE_PAYLOAD, ensure_ascii=False, indent=2)
    return (
        "Eres un experto académico y pedagogo especializado en crear material de aprendizaje "
        "de alta calidad.\n\n"
        f"El usuario ha escrito el siguiente resumen sobre \"{title}\":\n\n"
        "---\n"
        f"{content}\n"
        "---\n\n"
        "Basándote en este contenido, enriquécelo con información enciclopédica confiable y genera "
        "el siguiente material educativo en español.\n"
        "Responde ÚNICAMENTE con un objeto JSON válido con esta estructura exacta "
        "(sin texto adicional, sin bloques de código):\n\n"
        f"{example}\n\n"
        "Reglas CRÍTICAS para el campo mermaidMap (o el mapa no se renderizará):\n"
        "- Usa sintaxis Mermaid mindmap con indentación de 2 espacios por nivel.\n"
        "- Las dos primeras líneas deben ser: mindmap y root((TituloSimple)).\n"
        "- Texto de nodos: solo letras sin acentos ni tildes, sin paréntesis (), corchetes [], "
        "llaves {} ni símbolos &, |, !, #, %, @, <, >.\n"
        "- Correcto: \"Variables\", no \"Variables (let, const)\". Correcto: \"AND logico\", no \"AND (&&)\".\n"
        "- Genera entre 3 y 5 ramas principales, cada una con 2 a 4 subnodos.\n\n"
        "Reglas para el resto de campos:\n"
        "- extendedSummary en markdown: secciones con encabezados ## y subsecciones ###, "
        "nunca un encabezado #; al menos 10 viñetas detalladas en total.\n"
        "- Genera entre 5 y 8 asociaciones para los conceptos más difíciles.\n"
        "- La historia debe ser coherente, verosímil y educativa.\n"
        "- Enriquece con datos reales, fechas, nombres y estadísticas cuando sea relevante.\n"
        f"- Incluye exactamente estas claves: {', '.join(REQUIRED_FIELDS)}.\n"
        "- Responde SOLO con JSON válido."
    )
