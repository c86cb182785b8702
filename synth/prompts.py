"""Prompt text for the content service.

Each operation sends:  "<TASK HEADER>:\n" + JSON({"payload": ..., "instructions": ...})
where the instructions are one of the templates below plus the language line
and the JSON Schema fragment for the keys being requested. Templates use
str.format with {language}; literal braces are doubled.
"""

LANGUAGE_INSTRUCTION = (
    "LANGUAGE: You MUST format ALL output in {language}. Translate every single "
    "field and string value into {language}. Every piece of text must be in {language}."
)

JSON_ONLY = (
    "Return ONLY valid JSON (a single object) and NOTHING ELSE: no commentary, "
    "no markdown, no code fences."
)

META_INSTRUCTIONS = """Return ONLY a single JSON object with keys 'meta' and 'snapshot'.

CRITICAL CONSTRAINTS:
1. meta.name and meta.headline: non-empty strings. Preserve the name from the payload.
2. meta.contact: MUST be an object {{email: string, location: string}}, never a plain string.
3. meta.social_links: copy from the payload unchanged when present.
4. snapshot.tech: 150-250 characters, comma-separated technologies.
5. snapshot.achievements: 3 to 5 items, each 40-240 characters.
6. snapshot.selected_projects: exactly 2 items, each 40-200 characters.

REMEMBER: ALL content MUST be in {language}."""

EXPERIENCE_INSTRUCTIONS = """Return ONLY a single JSON object with the key 'experience'.

Each experience entry MUST have non-empty 'company', non-empty 'role' and a
non-empty 'bullets' array (each bullet 40-300 characters). Include 'period'
and 'location' when the payload has them, and an optional 'summary': one
paragraph (100-300 characters) describing the role and its impact.

REMEMBER: ALL content MUST be in {language}."""

SHOWCASE_INSTRUCTIONS = """Return ONLY a single JSON object with keys 'projects', 'publications' and 'certifications'.

For projects: objects {{title, description (80-330 chars), url, stack, bullets}}.
Projects without their own url use the user's GitHub link from
aggregated.profiles[0].social_links.github when present.

For publications: an array of descriptive strings (each >= 40 chars) in the
form 'Title — YEAR. One-line summary.' If an item is short, expand it.

For certifications: objects {{name (required), issuer, date (ISO), url,
description (max 140 chars)}}.

Every array MUST be non-empty when the payload has matching source data.
REMEMBER: ALL content MUST be in {language}."""

SYNTHESIS_INSTRUCTIONS = """Return ONLY a single JSON object with keys 'summary', 'extras' and 'meta'.

CRITICAL:
- summary: 150-300 characters (hard limits 80-330), professional tone, in {language}.
- extras: a non-empty array of objects {{category, text (<= 140 chars)}}.
- meta: you may add a headline (50-150 chars) or contact details that are
  missing. Do NOT change meta.name. Do NOT remove or change meta.social_links.
- meta.contact: MUST be an object {{email: string, location: string}}.

REMEMBER: ALL content MUST be in {language}."""

ENRICH_FIELDS_INSTRUCTIONS = """You will receive a small object containing some of the keys: meta, summary,
snapshot, experience, projects, publications, certifications, extras. Their
current values failed validation. Return ONLY a single JSON object with those
same keys, values corrected to match the schema exactly:
- publications -> array of descriptive strings (each >= 40 chars, e.g. "Title — YEAR. One-line summary.")
- certifications -> array of objects {{name (required), issuer, date (ISO), url, description (<= 140 chars)}}
- extras -> array of objects {{category, text (<= 140 chars)}}
- snapshot -> object {{tech (150-250 chars), achievements (3-5 items, each >= 40 chars), selected_projects (2 items, each 40-200 chars)}}
- summary -> string of 80-330 characters
- meta -> object; preserve meta.name if present and only add or polish headline/contact.
Use the context for facts. Do NOT include any other keys. Write in {language}."""

ENRICH_FULL_INSTRUCTIONS = """You will receive the current resume JSON (base_resume) and the user's
overrides. Update the resume so that it conforms to the schema and
incorporates the overrides (publications, certifications, extras). Preserve
every value that is already valid. Preserve meta.name and meta.social_links.
Return ONLY the full resume JSON object (same schema). Write in {language}."""

SINGLE_SHOT_INSTRUCTIONS = """You will produce EXACTLY one JSON object that conforms to the provided
JSON Schema. Strict field constraints:
 - meta.name, meta.headline: non-empty strings; meta.contact: object
 - summary: 80-330 characters
 - snapshot.tech: 150-250 characters; achievements: 3-5 items; selected_projects: 2 items
 - experience: objects with company, role, period, bullets (each 40-300 chars)
 - projects: objects with title (<= 120), url, stack, description (80-330), bullets
 - publications: strings, each >= 40 characters
 - certifications: objects {{name (required), issuer, date, url, description (<= 140)}}
 - extras: objects {{category, text (<= 140)}}
If a field would exceed its max length, shorten it. Write in {language}."""

LABELS_INSTRUCTIONS = """You are a professional resume label translator. Translate section headings to {language}.

RULES:
1. Translate VALUES to {language} ONLY. Do NOT change the KEY names.
2. Each value must be a professional heading (1-5 words).
3. Do NOT return snake_case.
4. MUST include ALL 12 keys in the output.

Keys and their English headings:
{labels}"""

DEFAULT_LABELS = {
    "professional_summary": "Professional Summary",
    "tech_snapshot": "Tech Snapshot",
    "top_achievements": "Top Achievements",
    "selected_projects": "Selected Projects",
    "experience": "Experience",
    "projects_case_studies": "Projects — Case Studies",
    "publications": "Publications",
    "certifications": "Certifications",
    "continuous_learning_community": "Continuous Learning & Community",
    "extras": "Extras",
    "page_2_projects_publications": "Page 2 — Projects & Publications",
    "references_available": "References available on request",
}

# Task headers prefixed to each request's input text.
HEADER_META = "Format profile and snapshot"
HEADER_EXPERIENCE = "Format professional history"
HEADER_SHOWCASE = "Format projects, publications and certifications"
HEADER_SYNTHESIS = "Polish summary, extras and meta"
HEADER_ENRICH_FIELDS = "Enrich only specific fields"
HEADER_ENRICH_FULL = "Enrich resume with overrides"
HEADER_SINGLE_SHOT = "Format resume"
HEADER_LABELS = "Translate UI labels"
