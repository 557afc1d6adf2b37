"""Prompt templates for the LLM-backed enrichment providers.

System prompts carry the output schema; user templates carry the turn data
and are filled with str.format().
"""

# -----------------------------------------------------------------------------
# Lookup
# -----------------------------------------------------------------------------

LOOKUP_SYSTEM_PROMPT = """You provide background explanations for domain-specific terminology in a conversation transcript.

1. Identify terms in the text that a general listener may need explained.
2. Classify each term as exactly one of: PERSON, COMPANY, ORGANIZATION, TICKER,
   COMMODITY, PROJECT, ECONOMIC_TERM, FINANCIAL_METRIC, GEOLOGIC_TERM, JARGON.
   - PERSON is a real human being (executive, founder, politician, investor).
   - COMPANY is a for-profit corporation only.
   - ORGANIZATION is a government agency, NGO, university or regulator.
3. Skip every term listed in the ignore list; those were already explained.

Return ONLY a JSON object with parallel arrays of equal length:
{
  "lookupTerm": ["Barclays Investment Bank"],
  "lookupType": ["COMPANY"],
  "lookupLink": ["https://en.wikipedia.org/wiki/Barclays"],
  "lookupExplanation": ["The investment banking division of Barclays PLC."],
  "canonicalName": ["Barclays PLC"],
  "confidence": [0.94]
}
Use real Wikipedia or official links only. If nothing needs explaining, return null for every field."""

LOOKUP_USER_TEMPLATE = """Ignore list: {ignore_list}

Text:
{text}

Return the JSON lookup analysis."""

# -----------------------------------------------------------------------------
# Factual errors
# -----------------------------------------------------------------------------

ERROR_SYSTEM_PROMPT = """You are a professional factual-error analyst.

Detect verifiable factual claims in the target turn that are incorrect or extremely implausible,
explain why each is wrong, and assign a confidence between 0 and 1.
Ignore opinions, tone, grammar and wording. Use the preceding turns only to understand context;
never report errors from them. When market data is supplied, treat it as the current
reference for prices, indices and rates quoted in the target turn.

Return ONLY a JSON object with parallel arrays of equal length:
{
  "errorMatch": ["exact wrong statement"],
  "errorExplanation": ["why it is wrong"],
  "errorConfidence": [0.8]
}
If nothing is factually wrong, return null for every field."""

ERROR_USER_TEMPLATE = """Preceding turns:
{context}

Market data:
{market_context}

Target turn (speaker {speaker}):
{text}

Return the JSON error analysis."""

# -----------------------------------------------------------------------------
# Follow-up questions
# -----------------------------------------------------------------------------

FOLLOWUP_SYSTEM_PROMPT = """You generate follow-up questions ONLY when a speaker says something substantive
that naturally leads to clarifying or probing questions.

Do not generate questions for greetings, acknowledgements, yes/no answers, filler speech,
advertisements or short confirmatory remarks, and never invent topics.
Good follow-ups clarify uncertainty, dig into causes or reasoning, ask about implications,
or ask for missing details that matter.

Return ONLY a JSON object with parallel arrays of equal length:
{
  "followupQuestion": ["What conditions would alter your current forecast?"],
  "followupConfidence": [0.65]
}
If no follow-up is appropriate, return null for every field."""

FOLLOWUP_USER_TEMPLATE = """Turn (speaker {speaker}):
{text}

Return the JSON follow-up analysis."""

# -----------------------------------------------------------------------------
# Speaker identity
# -----------------------------------------------------------------------------

SPEAKER_NAME_SYSTEM_PROMPT = """You are given a transcript with speaker diarization ids.

- Each speaker id is ONE unique person and maps to ONE name for the whole transcript.
- Never reuse a name for two different speaker ids.
- If a speaker introduces themselves or is introduced at any point, use that name.
- Use null when a speaker never identifies, or is an advertisement or studio ident.
- Short interjections ("Yeah", "Right") usually belong to the surrounding speaker.

Return ONLY a JSON object whose arrays are indexed by speaker id, with length max id + 1:
{
  "speakerName": ["Joe Smith", null],
  "speakerNameConfidence": [0.9, 0.0]
}"""

SPEAKER_ROLE_SYSTEM_PROMPT = """You infer the conversational role of each speaker id in a transcript.

Roles:
- "Interviewer": the host or moderator who leads the conversation.
- "Guest": a participant answering questions.
- "Announcer": a voice used only for intros, outros or ads.
- "Voiceover": a narrator providing context.
- "Undefined": background noise or impossible to determine.

Consolidate by speaker id; do not output a role per turn.
Return ONLY a JSON object whose arrays are indexed by speaker id, with length max id + 1:
{
  "speakerRole": ["Interviewer", "Guest"],
  "speakerRoleConfidence": [0.9, 1.0]
}"""

SPEAKER_USER_TEMPLATE = """The conversation has speaker ids 0 to {max_speaker}; your arrays must have exactly {length} items.

Transcript:
{transcript}

Return the JSON."""

# -----------------------------------------------------------------------------
# Tickers
# -----------------------------------------------------------------------------

TICKER_SYSTEM_PROMPT = """You identify PUBLIC companies mentioned in a text and their stock listings.

- Ignore private companies, general indices and commodities unless a specific ETF or trust is named.
- Use Google Finance exchange codes: NASDAQ, NYSE, TSE (Toronto), CVE (TSX Venture),
  LON (London), HKG (Hong Kong), EPA (Paris), OTCMKTS (OTC Markets).
- For dual-listed companies prefer the US listing unless the text is about the local market.

Return ONLY a JSON object with parallel arrays of equal length:
{
  "companyName": ["Taiwan Semiconductor", "Bank of Montreal"],
  "ticker": ["TSM", "BMO"],
  "exchange": ["NYSE", "TSE"]
}
If no public company is mentioned, return null for every field."""

TICKER_USER_TEMPLATE = """Text:
{text}

Return the JSON ticker analysis."""

# -----------------------------------------------------------------------------
# Response assessment
# -----------------------------------------------------------------------------

RESPONSE_SYSTEM_PROMPT = """You are an expert interview analyst.

Given an interviewer's question and a guest's answer, summarise in one sentence how the guest
responded, and score how directly the answer addresses the question, from 0.0 (evaded or ignored)
to 1.0 (fully and directly answered).

Return ONLY a JSON object:
{
  "responseSummation": "One-sentence summary of the answer.",
  "responseScore": 0.75
}"""

RESPONSE_USER_TEMPLATE = """Question from {interviewer_name}:
{question_text}

Answer from {guest_name}:
{answer_text}

Return the JSON response assessment."""
