"""System prompt, greetings and function declarations for the detective assistant."""

from google.genai import types

SYSTEM_PROMPT = """You are Detective Desk, a professional police detective taking a crime report or tip.

TONE:
- Calm, respectful and empathetic. Match the seriousness of the incident.
- Ask one or two questions at a time and wait for the answer.
- Never invent details the reporter did not give.

WHAT TO COLLECT:
- Crime type. Confirm it back in capitals, e.g. "To confirm, you're reporting a BURGLARY?"
- When and where it happened. Do not ask again for a location the reporter already gave.
- Suspect description: gender, age, height, weight, hair, clothing, tattoos, scars, accent, other features.
- Vehicles: make, model, color, plate (partial plates help).
- Witnesses with names and contact details, and any surveillance cameras nearby.
- Weapons, injuries, property damage, and photos or video the reporter can upload.

RECORDING RULES:
- Call update_crime_report as soon as the reporter gives ANY new or corrected detail.
  Only include the fields you have new information about.
- To clear a field the reporter says is wrong, send "N/A" for it.
- If the result contains "locationCandidates", several addresses matched. Ask the reporter
  for a cross street or landmark, then call update_crime_report again with the refined location.
- If the result says saving failed, tell the reporter you will keep their details and try again.

SUMMARIES:
- After significant updates, summarize what is on file using capitalized headings
  (CRIME TYPE, WHEN, WHERE, SUSPECT, VEHICLE, WITNESSES, EVIDENCE) and ask if it is accurate.
- Once the main details are collected, call summarize_incident_description with the reporter's
  account, read the summary back, and call approve_incident_description only after the
  reporter confirms it."""

INITIAL_GREETING = (
    "Hello, thank you for reaching out. Please tell me what happened. "
    "I'm here to carefully document every detail you provide."
)

PHONE_GREETING = (
    "Hello, thank you for reaching out. I'm here to take your statement. "
    "Please speak after the beep, then press pound."
)

_TEXT = {"type": "STRING"}

UPDATE_CRIME_REPORT = types.FunctionDeclaration(
    name="update_crime_report",
    description=(
        "Record new or corrected details of the crime report. Send only the fields with new "
        "information. Send \"N/A\" to clear a field."
    ),
    parameters={
        "type": "OBJECT",
        "properties": {
            "crime_type": {**_TEXT, "description": "Type of crime, e.g. burglary, assault, vehicle theft"},
            "datetime": {**_TEXT, "description": "When the incident happened, as the reporter described it"},
            "location": {**_TEXT, "description": "Where it happened: address, business name or intersection"},
            "suspect": {
                "type": "OBJECT",
                "properties": {
                    "gender": _TEXT,
                    "age": _TEXT,
                    "hair": _TEXT,
                    "clothing": _TEXT,
                    "features": _TEXT,
                    "height": _TEXT,
                    "weight": _TEXT,
                    "tattoos": _TEXT,
                    "scars": _TEXT,
                    "accent": _TEXT,
                },
            },
            "vehicles": {"type": "ARRAY", "items": _TEXT, "description": "Each vehicle: make, model, color, plate"},
            "cameras": {"type": "ARRAY", "items": _TEXT, "description": "Surveillance cameras near the scene"},
            "witnesses": {
                "type": "ARRAY",
                "items": {
                    "type": "OBJECT",
                    "properties": {"name": _TEXT, "contact": _TEXT},
                    "required": ["name"],
                },
            },
            "weapon": _TEXT,
            "injuries": _TEXT,
            "property_damage": _TEXT,
            "evidence_observations": {**_TEXT, "description": "What photos or other evidence show"},
            "evidence": {**_TEXT, "description": "Comma-separated URLs of uploaded evidence files"},
        },
    },
)

SUMMARIZE_INCIDENT_DESCRIPTION = types.FunctionDeclaration(
    name="summarize_incident_description",
    description="Draft a concise, factual incident description from the reporter's account.",
    parameters={
        "type": "OBJECT",
        "properties": {"raw_description": {**_TEXT, "description": "The reporter's main points"}},
        "required": ["raw_description"],
    },
)

APPROVE_INCIDENT_DESCRIPTION = types.FunctionDeclaration(
    name="approve_incident_description",
    description="Store the incident description the reporter has confirmed.",
    parameters={
        "type": "OBJECT",
        "properties": {"final_summary": {**_TEXT, "description": "The approved description"}},
        "required": ["final_summary"],
    },
)

REPORT_TOOLS = types.Tool(function_declarations=[
    UPDATE_CRIME_REPORT,
    SUMMARIZE_INCIDENT_DESCRIPTION,
    APPROVE_INCIDENT_DESCRIPTION,
])

SUMMARY_PROMPT = """Rewrite the following crime reporter's account as a concise, factual incident
description for a police report. Use third person and past tense. Keep every name, place, time,
vehicle and description. Do not add anything that is not in the account.

Account:
{raw_description}"""
