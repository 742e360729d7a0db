"""AMS Intake Assistant: a behavioral-health intake chat service.

Architecture Overview
=====================

Each chat request runs a **LangGraph** pipeline over a deterministic
matching core:

1. **Directory snapshot**: the provider directory (block-structured
   text) and the schedule (``prov_id|YYYY-MM-DD|HH:MM`` rows) are parsed
   into frozen records, memoised per file fingerprint.

2. **Hints**: state, payment type, therapy/psychiatry preference and
   language are pulled from the client's own messages with small,
   separately testable regex detectors.

3. **Matching**: hard constraints filter the directory (dropping the
   insurer when nothing else survives), a tunable weight table ranks
   what is left, and each care category is capped.

4. **Context**: the selected providers render as cards with their
   soonest *future* openings, under a character budget, plus a hidden
   availability index for the model's own reasoning.

5. **Completion**: Claude (via ``langchain-anthropic``) answers with the
   context in its system prompt; a single "nudge" retry corrects an
   empty, filtered or stalling first reply.

Explicit "what times does <provider> have?" requests are answered from
the schedule directly, without a model call.

Key Design Decisions
--------------------
- **Stateless requests**: the client sends recent history every time;
  nothing conversational is stored server-side.
- **Never invent**: every provider, slot and attribute in the prompt is
  rendered from parsed records; empty matches render an explicit note.
- **Graceful degradation**: no completion key gives a canned reply,
  search and EMR are optional, malformed data rows are dropped.
- **Dual Interface**: FastAPI server (production) + CLI chat loop
  (development/testing).

Package Structure
-----------------
- ``ams_intake/directory/`` - text normalisation, parsers, models, snapshot store
- ``ams_intake/matching/``  - hint extraction, scoring engine, name resolver
- ``ams_intake/context/``   - slot timing/formatting and context rendering
- ``ams_intake/agent.py``   - LangGraph StateGraph definition
- ``ams_intake/prompts.py`` - instruction files and system prompt composition
- ``ams_intake/config.py``  - centralized configuration from environment variables
- ``ams_intake/server.py``  - FastAPI application
- ``ams_intake/main.py``    - CLI chat interface
- ``ams_intake/services/``  - completion, search and EMR clients, cache, metrics
- ``ams_intake/api/``       - FastAPI routes and Pydantic schemas
"""
