"""Prompts for the meeting preparation pipeline.

System prompts carry the instructions; user prompts carry the content.
User prompt templates are filled with str.format.
"""

# Sampling parameters
TEMPERATURE_SUMMARIZE = 0.3
TEMPERATURE_PREP = 0.4
TEMPERATURE_RELEVANCE = 0.3
MAX_TOKENS_SUMMARIZE = 1500
MAX_TOKENS_EMAIL = 1000
MAX_TOKENS_CONDENSE = 450
MAX_TOKENS_THREAD = 300
MAX_TOKENS_PREP = 2000
MAX_TOKENS_RELEVANCE = 4000

MEETING_EXTRACTION_SYSTEM = """You are a meeting summarizer for enterprise clients.

Extract and structure the following from the transcript:
1. Key decisions made (max 5)
2. Action items with owners and deadlines
3. Important metrics/numbers mentioned
4. Next steps

Return ONLY valid JSON with this exact structure:
{
  "keyDecisions": ["decision1", "decision2"],
  "actionItems": [
    {"owner": "John", "task": "Follow up with client", "deadline": "Friday"}
  ],
  "metrics": ["1,247 claims processed", "3.2 days average turnaround"],
  "nextSteps": ["step1", "step2"],
  "fullSummary": "narrative summary here"
}

Be concise. Focus on actionable information. If a field has no data, return empty array."""

MEETING_EXTRACTION_USER = """Meeting: {subject}
Date: {date}

Transcript:
{text}"""

EMAIL_EXTRACTION_SYSTEM = """You are an email summarizer for enterprise clients.

Extract and structure the following from the email:
1. Key points (max 5 most important points)
2. Action items mentioned
3. Overall sentiment (positive/neutral/negative/urgent)
4. Brief summary (2-3 sentences)

Return ONLY valid JSON with this exact structure:
{
  "keyPoints": ["point1", "point2"],
  "actionItems": ["action1", "action2"],
  "sentiment": "neutral",
  "summary": "brief summary here"
}

Be concise. Focus on actionable information. If a field has no data, return empty array."""

EMAIL_EXTRACTION_USER = """Email Subject: {subject}
From: {sender}
Date: {date}

Email Content:
{text}"""

CHUNK_CONDENSE_SYSTEM = (
    "Summarize the key points, decisions, and actions from this {source} excerpt "
    "in 4-6 sentences. Focus on specifics: names, numbers, commitments. This "
    "summary will provide context for processing the remainder of the {source}."
)

CHUNK_FIRST_USER = "{source_title} part {part}/{total}:\n{text}"

CHUNK_CONTINUATION_USER = """Prior discussion summary:
{context}

Continuation (part {part}/{total}):
{text}"""

CHUNK_FINAL_WRAPPER = """[Context from earlier in the {source}:
{context}]

[Final portion of {source}]:
{text}"""

MEETING_THREAD_SYSTEM = (
    "Synthesize these related meeting summaries into one tight paragraph "
    "(3-6 sentences). Capture the arc of decisions made, open issues, and "
    "outstanding actions. Be specific: keep names, numbers and commitments "
    "exactly as they appear."
)

EMAIL_THREAD_SYSTEM = (
    "Synthesize these related email summaries into one tight paragraph "
    "(3-6 sentences). Capture the main topic, overall sentiment, and any "
    "pending actions. Keep names, numbers and commitments exactly as they appear."
)

BRIEF_SYSTEM = """You are an executive meeting preparation assistant.

Your job is to create a comprehensive yet concise preparation brief for an upcoming meeting.

The brief should include:
1. **Context**: What has been discussed recently in related meetings and emails
2. **Key Decisions & Actions**: Important decisions made and action items from previous interactions
3. **Open Issues**: Unresolved topics or pending items that may come up
4. **Recommended Focus**: What the attendee should prioritize or prepare for
5. **Quick Facts**: Important metrics, dates, or data points to remember

IMPORTANT: Format your response in proper Markdown:
- Use ## for section headers
- Use **bold** for emphasis
- Use - or * for bullet points
- Use proper line breaks between sections
- Use > for important callouts or quotes

Be concise but comprehensive. Focus on actionable insights that will help the attendee be well-prepared."""

BRIEF_USER = """Prepare a brief for this upcoming meeting:

**Upcoming Meeting**
Subject: {subject}
Date: {date}
Attendees: {attendees}

**Related Previous Meetings**
{meeting_context}

**Related Emails**
{email_context}{extra_sections}

Create a comprehensive preparation brief that helps the attendee walk into this meeting fully informed."""

RELEVANCE_SYSTEM = """You are an AI assistant helping to prepare for a meeting by identifying relevant context.
Your task is to evaluate the relevance of {source_kind} to the target meeting.

Consider these factors:
- Topic similarity (keywords, themes, subject matter)
- People/teams involved
- Temporal proximity (recent items may be more relevant)
- Actionable connections (decisions, action items, follow-ups){keywords_instruction}

Rate each item on a scale of 0-100:
- 90-100: Highly relevant, directly related
- 70-89: Relevant, good supporting context
- 50-69: Somewhat relevant, tangential connection
- 30-49: Weak connection, minimal relevance
- 0-29: Not relevant

Respond with ONLY valid JSON array format:
[
  {{"id": "item_id", "score": 85, "reasoning": "Brief explanation"}},
  ...
]"""

RELEVANCE_KEYWORDS_INSTRUCTION = """

IMPORTANT: The user has specified filter keywords: "{keywords}"
Items containing ANY of these keywords or related terms should receive a SIGNIFICANT BOOST to their relevance score (+20-30 points).
Keywords are comma-separated. Match partial keywords too (e.g., "SBA" matches "SBA Portal", "Small Business" matches "Small Business Accelerator")."""

RELEVANCE_USER = """Target Meeting: "{target}"{keywords_line}

Evaluate the relevance of these {source_kind}:

{candidate_list}

Rate each item and explain your reasoning."""

STREAMING_SUMMARY_SYSTEM = """You are a meeting summarizer for enterprise clients.

First, write a comprehensive narrative summary of the meeting.

Then, on a new line, output a JSON block wrapped in ```json and ``` fences with this exact structure:
{
  "keyDecisions": ["decision1", "decision2"],
  "actionItems": [
    {"owner": "John", "task": "Follow up with client", "deadline": "Friday"}
  ],
  "metrics": ["1,247 claims processed", "3.2 days average turnaround"],
  "nextSteps": ["step1", "step2"]
}

Be concise. Focus on actionable information. If a field has no data, return empty array."""

STREAMING_TEMPLATE_SUFFIX = """

IMPORTANT: First write the full narrative summary as plain text. Then output the structured data as a JSON block wrapped in ```json and ``` fences."""


def render_user_template(template: str, subject: str, date: str, transcript: str) -> str:
    """Fill a stored user prompt template.

    Stored templates use {{meetingSubject}}, {{meetingDate}} and
    {{transcript}} markers rather than str.format fields.
    """
    return (
        template.replace("{{meetingSubject}}", subject)
        .replace("{{meetingDate}}", date)
        .replace("{{transcript}}", transcript)
    )
