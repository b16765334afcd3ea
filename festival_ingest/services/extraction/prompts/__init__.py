"""
AI Extraction Prompts

Centralized prompt templates for festival data extraction.
"""

MAX_CONTENT_LENGTH = 100_000

TRUNCATION_MARKER = "...[content truncated]"

OUTPUT_TEMPLATE = """{
  "name": "Festival name",
  "description": "Brief description",
  "startDate": "YYYY-MM-DD",
  "endDate": "YYYY-MM-DD",
  "timezone": "IANA timezone or null",
  "registrationDeadline": "YYYY-MM-DD or null",
  "venue": {
    "name": "Primary venue name",
    "address": "Street address or null",
    "city": "City name",
    "state": "State or null",
    "country": "Country name",
    "postalCode": "Postal code or null",
    "latitude": 12.3456,
    "longitude": 12.3456
  },
  "website": "Official website or null",
  "facebook": "Facebook URL or null",
  "instagram": "Instagram URL or null",
  "email": "Contact email or null",
  "phone": "Contact phone or null",
  "registrationUrl": "Registration/ticket URL or null",
  "teachers": [
    {"name": "Teacher full name", "specialties": ["lindy hop", "balboa"]}
  ],
  "musicians": [
    {"name": "Band or musician", "genres": ["swing", "blues"]}
  ],
  "prices": [
    {
      "type": "early_bird|regular|late|student|local|vip|donation",
      "amount": 150.0,
      "currency": "USD|EUR|GBP|CHF",
      "deadline": "YYYY-MM-DD or null",
      "description": "Extra details or null"
    }
  ],
  "tags": ["swing", "blues", "workshop"]
}"""

RULES = """Rules:
1. Only include fields with actual data from the website
2. Use empty arrays for teachers/musicians if none found
3. Dates must be ISO format YYYY-MM-DD
4. For prices, use only the listed type values and currency codes
5. For venue, provide the most complete address information available
6. All text must be plain English (no HTML)
7. Return ONLY the JSON object, no code fences or commentary"""


def truncate_content(content: str, limit: int = MAX_CONTENT_LENGTH) -> str:
    """Cut content at ``limit`` characters and mark the cut."""
    if len(content) <= limit:
        return content
    return content[:limit] + TRUNCATION_MARKER


def build_extraction_prompt(content: str, source_url: str) -> str:
    """Build the primary extraction prompt for crawled festival content."""
    return f"""You are an expert festival data extractor analyzing the website of a swing/blues dance festival.
Extract all relevant information as JSON with the following structure:

{OUTPUT_TEMPLATE}

{RULES}

The content may contain several pages joined by "=== PAGE SEPARATOR ===" markers.
Use information from all of them.

Website content from {source_url}:

{truncate_content(content)}"""


def build_retry_prompt(
    content: str,
    source_url: str,
    previous_confidence: float,
    threshold: float,
) -> str:
    """Build a second-pass prompt after a low-confidence extraction."""
    return f"""Previous extraction confidence: {previous_confidence:.2f} (minimum required {threshold}).
Re-run the extraction carefully, filling any missing data and verifying consistency.
Do not invent data that is not present in the content.

{build_extraction_prompt(content, source_url)}"""


def build_minimal_prompt(source_url: str) -> str:
    """Build a schema-only prompt for the festival at ``source_url``."""
    return f"""Provide ONLY this JSON for the festival at {source_url} and nothing else:
{OUTPUT_TEMPLATE}"""
