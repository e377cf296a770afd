"""Section guidance: the third instruction layer, selected by the current section.

Each builder reads the contour map so the guidance can react to what has
already been captured.
"""

from __future__ import annotations

from typing import Callable

from ..models import ConflictStatus, ContourMap, SectionId


def _universe_scan(_: ContourMap) -> str:
    return """SECTION 0A: UNIVERSE SCAN (automated, no stakeholder interaction)

The system gathers public intelligence about the customer before the interview.

GOAL: Produce a pre-meeting intelligence brief from public sources.

GATHERED:
- Company overview and industry
- Public organizational structure (filings, website, news)
- Known enterprise systems (job postings, press releases, partner listings)
- Recent mergers, acquisitions and reorganizations
- Suggested interview questions

BEHAVIOR:
- If the stakeholder is connected already, greet them and explain that you are preparing for the interview.
- Call advance_section once the brief is ready.

EXIT CONDITIONS:
- The intelligence brief is stored on the session."""


def _premeet_request(_: ContourMap) -> str:
    return """SECTION 0B: PRE-MEETING REQUEST (automated email to the stakeholder)

GOAL: Ask the stakeholder for useful documents before the interview.

REQUESTED:
- Chart of accounts or cost center listing
- Organizational chart or reporting structure
- List of key enterprise systems
- Recent restructuring documentation

BEHAVIOR:
- Documents uploaded through the portal are processed and become interview context.
- If the stakeholder is already connected and wants to begin, move on to Section 1.

EXIT CONDITIONS:
- The request was sent, or skipped because the stakeholder is present.
- Uploaded documents were processed."""


def _business_overview(contour_map: ContourMap) -> str:
    if contour_map.organizational_hierarchy:
        opening = (
            "Some organizational data is already captured. Present it with show_hierarchy "
            "and ask whether it reflects how they think about the business."
        )
    else:
        opening = (
            'OPENING: "Let me start with the big picture. How is your company organized at the '
            'highest level: by geography, by product line, by function, or a mix?"'
        )
    return f"""SECTION 1: BUSINESS OVERVIEW (target 10-15 minutes)

GOAL: Capture the top-level organizational structure in the stakeholder's own words.

{opening}

CAPTURE:
- Division and business unit names and how they nest
- Structure type: geographic, functional, product line or hybrid
- Recent or planned reorganizations
- Internal vocabulary ("segment" versus "division" versus "business line")

BEHAVIOR:
- If you get a flat list, probe for the layer above: "How do those roll up?"
- If a reorg comes up, ask when it takes effect and whether old structures still appear in systems.
- Reflect what you heard with show_hierarchy so they can correct it visually.
- Record each confirmed node with update_contour (provenance STAKEHOLDER_CONFIRMED).
- Record vocabulary differences in vocabulary_map.

EXIT CONDITIONS (call advance_section when all are met):
- Structure captured at least two levels deep
- Structure type identified
- Stakeholder accepted the hierarchy as correct or close enough

PARKING: If the full structure is unknown, record what you have, park_item the gaps, then advance."""


def _system_authority(contour_map: ContourMap) -> str:
    if contour_map.sor_authority_map:
        opening = (
            "Some system-of-record mappings are already known. Present them with show_table "
            "and ask the stakeholder to confirm or correct them."
        )
    else:
        opening = (
            'OPENING: "Which system is the source of truth for your organizational structure? '
            'For example, does your ERP define cost centers, or is that kept somewhere else?"'
        )
    return f"""SECTION 2: SYSTEM AUTHORITY (target 5-10 minutes)

GOAL: Identify the system of record (SOR) for each organizational dimension.

{opening}

CAPTURE:
- The owning system for each major dimension (legal entity, cost center, department, geography)
- Known disagreements between systems
- Which system feeds which
- Manual overrides and spreadsheet bridges

BEHAVIOR:
- Go one dimension at a time.
- When systems disagree, show the discrepancy with show_comparison and ask which is right.
- Record SOR entries with update_contour on sor_authority_map.
- If nobody owns a dimension, park_item it with a suggested person.

EXIT CONDITIONS (call advance_section when met):
- SOR identified for legal entity, cost center and department
- Known conflicts recorded in conflict_register"""


def _dimensional_walkthrough(contour_map: ContourMap) -> str:
    hierarchy_count = len(contour_map.organizational_hierarchy)
    open_conflicts = sum(1 for c in contour_map.conflict_register if c.status is ConflictStatus.OPEN)

    if hierarchy_count:
        data_note = (
            f"{hierarchy_count} hierarchy nodes are already captured. Use show_hierarchy and "
            "show_comparison to present them and ask for corrections."
        )
    else:
        data_note = (
            "No system data is available yet. Ask the stakeholder to describe each dimension, "
            "or offer to process an uploaded file."
        )
    conflict_note = ""
    if open_conflicts:
        conflict_note = (
            f"\n\n{open_conflicts} open conflicts need resolution. Handle them first, "
            "one show_comparison each."
        )

    return f"""SECTION 3: DIMENSIONAL WALKTHROUGH (target 25-30 minutes)

GOAL: Validate every organizational dimension against discovered data. This is the longest section.

OPENING: "Let's walk through what we found in your systems, one dimension at a time. Tell me if it is right, wrong or out of date."

DIMENSIONS, IN ORDER:
1. Legal Entity
2. Division / Business Unit
3. Cost Center
4. Department
5. Geography / Region
6. Profit Center
7. Segment (ASC 280 reporting)
8. Customer Segment, if applicable

{data_note}{conflict_note}

BEHAVIOR:
- Show what is known for each dimension with show_hierarchy or show_table.
- Use show_comparison for every conflict and let the stakeholder pick the correct value.
- Do not force a resolution. "I need to check with accounting" means park_item.
- Record every confirmed value with update_contour and the right provenance.
- After about 5 minutes on one dimension, offer to park it.

EXIT CONDITIONS (call advance_section when met):
- At least 80% of dimensions confirmed, corrected or parked
- Legal entity and cost center conflicts resolved or parked with an owner"""


def _management_reporting(contour_map: ContourMap) -> str:
    existing = ""
    if contour_map.management_overlay:
        existing = "\n\nSome management overlay data is already captured. Present it and ask if it is current."
    return f"""SECTION 4: MANAGEMENT REPORTING (target 10 minutes)

GOAL: Capture how the leadership team sees the business, which often differs from the system structure.

OPENING: "When your CFO presents to the board, what does the management P&L look like? Same divisions, or sliced differently?"{existing}

CAPTURE:
- Management hierarchy
- Board-level metrics and their groupings (revenue, EBITDA, headcount)
- Manual adjustments or reclassifications made for board reporting
- The one report that matters most

BEHAVIOR:
- Contrast the management view with the operational structure from Section 3.
- If they differ, show both with show_hierarchy.
- Build management_overlay with update_contour.

EXIT CONDITIONS (call advance_section when met):
- Management hierarchy captured, or explicitly confirmed to match the operational one
- Board metrics identified
- Manual adjustments noted

PARKING: Without visibility into board reporting, park it with a note to involve the CFO or FP&A lead."""


def _pain_points(contour_map: ContourMap) -> str:
    existing = ""
    if contour_map.priority_queries:
        existing = (
            f"\n\n{len(contour_map.priority_queries)} priority queries are already captured. "
            "Review them and ask what is missing."
        )
    return f"""SECTION 5: PAIN POINTS AND PRIORITY QUERIES (target 10 minutes)

GOAL: Find out what to optimize first and which questions to validate against.

OPENING: "Last topic: which reporting questions take too long to answer, or break every quarter-end?"{existing}

CAPTURE:
- The top 5-10 painful reporting questions
- Why each one hurts (manual work, conflicting data, slow, unreliable)
- Frequency (daily, monthly, quarterly, ad hoc)
- Current workarounds

BEHAVIOR:
- Ask for concrete examples, then probe the root cause.
- Reflect the ranked list with show_table.
- Add each query to priority_queries with update_contour.
- Close with a short summary of everything captured and what happens next.

EXIT CONDITIONS (call advance_section, which completes the interview):
- At least 3 priority queries captured
- The stakeholder had a chance to add anything missed
- A summary of the session was presented"""


SECTION_PROMPTS: dict[SectionId, Callable[[ContourMap], str]] = {
    SectionId.UNIVERSE_SCAN: _universe_scan,
    SectionId.PREMEET_REQUEST: _premeet_request,
    SectionId.BUSINESS_OVERVIEW: _business_overview,
    SectionId.SYSTEM_AUTHORITY: _system_authority,
    SectionId.DIMENSIONAL_WALKTHROUGH: _dimensional_walkthrough,
    SectionId.MANAGEMENT_REPORTING: _management_reporting,
    SectionId.PAIN_POINTS: _pain_points,
}


def section_prompt(section: SectionId, contour_map: ContourMap) -> str:
    builder = SECTION_PROMPTS.get(section)
    return builder(contour_map) if builder else ""
