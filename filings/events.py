"""
8-K EVENT ITEMS
---------------------------------------------------------------------------

Form 8-K reports announce events under numbered items. Since August 2004 the
items are coded `Item N.NN` (e.g. 2.02 Results of Operations); before that
they were numbered 1 to 12. Each code found in a filing is mapped to its
description; unknown codes are kept with a placeholder description.
"""

import re
from dataclasses import dataclass
from typing import Iterable

UNKNOWN_ITEM = "Unknown item"

EIGHT_K_ITEMS = {
    "1.01": "Entry into a Material Definitive Agreement",
    "1.02": "Termination of a Material Definitive Agreement",
    "1.03": "Bankruptcy or Receivership",
    "1.04": "Mine Safety - Reporting of Shutdowns and Patterns of Violations",
    "1.05": "Material Cybersecurity Incidents",
    "2.01": "Completion of Acquisition or Disposition of Assets",
    "2.02": "Results of Operations and Financial Condition",
    "2.03": "Creation of a Direct Financial Obligation or an Obligation under an "
            "Off-Balance Sheet Arrangement of a Registrant",
    "2.04": "Triggering Events That Accelerate or Increase a Direct Financial "
            "Obligation or an Obligation under an Off-Balance Sheet Arrangement",
    "2.05": "Costs Associated with Exit or Disposal Activities",
    "2.06": "Material Impairments",
    "3.01": "Notice of Delisting or Failure to Satisfy a Continued Listing Rule "
            "or Standard; Transfer of Listing",
    "3.02": "Unregistered Sales of Equity Securities",
    "3.03": "Material Modification to Rights of Security Holders",
    "4.01": "Changes in Registrant's Certifying Accountant",
    "4.02": "Non-Reliance on Previously Issued Financial Statements or a Related "
            "Audit Report or Completed Interim Review",
    "5.01": "Changes in Control of Registrant",
    "5.02": "Departure of Directors or Certain Officers; Election of Directors; "
            "Appointment of Certain Officers; Compensatory Arrangements of Certain Officers",
    "5.03": "Amendments to Articles of Incorporation or Bylaws; Change in Fiscal Year",
    "5.04": "Temporary Suspension of Trading Under Registrant's Employee Benefit Plans",
    "5.05": "Amendments to the Registrant's Code of Ethics, or Waiver of a "
            "Provision of the Code of Ethics",
    "5.06": "Change in Shell Company Status",
    "5.07": "Submission of Matters to a Vote of Security Holders",
    "5.08": "Shareholder Director Nominations",
    "6.01": "ABS Informational and Computational Material",
    "6.02": "Change of Servicer or Trustee",
    "6.03": "Change in Credit Enhancement or Other External Support",
    "6.04": "Failure to Make a Required Distribution",
    "6.05": "Securities Act Updating Disclosure",
    "6.06": "Static Pool",
    "6.10": "Alternative Filings of Asset-Backed Issuers",
    "7.01": "Regulation FD Disclosure",
    "8.01": "Other Events",
    "9.01": "Financial Statements and Exhibits",
}

# Numbering used before August 2004
LEGACY_EIGHT_K_ITEMS = {
    "1": "Changes in Control of Registrant",
    "2": "Acquisition or Disposition of Assets",
    "3": "Bankruptcy or Receivership",
    "4": "Changes in Registrant's Certifying Accountant",
    "5": "Other Events",
    "6": "Resignations of Registrant's Directors",
    "7": "Financial Statements and Exhibits",
    "8": "Change in Fiscal Year",
    "9": "Regulation FD Disclosure",
    "10": "Amendments to the Registrant's Code of Ethics, or Waiver of a "
          "Provision of the Code of Ethics",
    "11": "Temporary Suspension of Trading Under Registrant's Employee Benefit Plans",
    "12": "Results of Operations and Financial Condition",
}

EIGHT_K_FORM_TYPES = ("8-K", "8-K/A")

_MODERN_ITEM_RE = re.compile(r"\bItem\s*(\d{1,2}\.\d{2})\b", re.IGNORECASE)
_LEGACY_ITEM_RE = re.compile(r"\bItem\s*(\d{1,2})\b(?!\.\d)", re.IGNORECASE)


@dataclass(frozen=True)
class EventItem:
    item_code: str
    description: str


def _unique(codes: Iterable[str]) -> list[str]:
    return list(dict.fromkeys(codes))


def extract_events(payload: str) -> list[EventItem]:
    """
    Event items reported in an 8-K payload, in order of first appearance.

    Modern `Item N.NN` codes win; legacy single-number items are only read
    when a filing has no modern code at all.
    """
    codes = _unique(_MODERN_ITEM_RE.findall(payload))
    if codes:
        table = EIGHT_K_ITEMS
    else:
        codes = _unique(str(int(c)) for c in _LEGACY_ITEM_RE.findall(payload))
        table = LEGACY_EIGHT_K_ITEMS

    return [EventItem(code, table.get(code, UNKNOWN_ITEM)) for code in codes]
