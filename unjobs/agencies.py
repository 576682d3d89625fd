"""
Effective agency resolution for UN Secretariat postings.

Secretariat departments (DPPA, DESA, ...) stay under "UN Secretariat".
Offices, overseas offices, regional commissions and tribunals are reported
as their own agency when a posting's department names them.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

SECRETARIAT = "UN Secretariat"


@dataclass(frozen=True)
class SecretariatEntity:
    short_name: str
    full_name: str
    keywords: Tuple[str, ...]
    show_as_separate: bool


SECRETARIAT_ENTITIES = (
    # Departments
    SecretariatEntity("DPPA", "Department of Political and Peacebuilding Affairs",
                      ("DPPA", "Political and Peacebuilding", "Political Affairs"), False),
    SecretariatEntity("DPO", "Department of Peace Operations",
                      ("DPO", "Peace Operations", "DPKO", "Peacekeeping"), False),
    SecretariatEntity("DOS", "Department of Operational Support",
                      ("DOS", "Operational Support", "Field Support"), False),
    SecretariatEntity("DMSPC", "Department of Management Strategy, Policy and Compliance",
                      ("DMSPC", "Management Strategy"), False),
    SecretariatEntity("DESA", "Department of Economic and Social Affairs",
                      ("DESA", "Economic and Social Affairs"), False),
    SecretariatEntity("DGC", "Department of Global Communications",
                      ("DGC", "Global Communications", "DPI", "Public Information"), False),
    SecretariatEntity("ODA", "Office for Disarmament Affairs", ("ODA", "Disarmament Affairs"), False),
    SecretariatEntity("DSS", "Department of Safety and Security",
                      ("DSS", "Safety and Security", "UNDSS"), False),
    SecretariatEntity("DGACM", "Department for General Assembly and Conference Management",
                      ("DGACM", "General Assembly", "Conference Management"), False),
    SecretariatEntity("OIOS", "Office of Internal Oversight Services", ("OIOS", "Internal Oversight"), False),
    SecretariatEntity("OLA", "Office of Legal Affairs", ("OLA", "Legal Affairs"), False),
    SecretariatEntity("EOSG", "Executive Office of the Secretary-General",
                      ("EOSG", "Executive Office", "Secretary-General"), False),
    SecretariatEntity("OICT", "Office of Information and Communications Technology",
                      ("OICT", "Information and Communications Technology"), False),
    # Offices
    SecretariatEntity("OCHA", "Office for the Coordination of Humanitarian Affairs",
                      ("OCHA", "Humanitarian Affairs", "UNOCHA"), True),
    SecretariatEntity("OHCHR", "Office of the UN High Commissioner for Human Rights",
                      ("OHCHR", "Human Rights", "High Commissioner for Human Rights", "UNOHCHR"), True),
    SecretariatEntity("UNOCT", "Office of Counter-Terrorism",
                      ("UNOCT", "Counter-Terrorism", "Counter Terrorism", "OCT"), True),
    SecretariatEntity("DCO", "Development Coordination Office",
                      ("DCO", "Development Coordination", "Resident Coordinator"), True),
    SecretariatEntity("UNOOSA", "Office for Outer Space Affairs",
                      ("UNOOSA", "Outer Space", "Space Affairs"), True),
    SecretariatEntity("OSAA", "Office of the Special Adviser on Africa",
                      ("OSAA", "Special Adviser on Africa"), True),
    SecretariatEntity("UNDRR", "UN Office for Disaster Risk Reduction",
                      ("UNDRR", "Disaster Risk Reduction", "UNISDR"), True),
    SecretariatEntity("UN-OHRLLS", "Office of the High Representative for LDCs, LLDCs and SIDS",
                      ("OHRLLS", "LDCs", "LLDCs", "SIDS", "Least Developed"), True),
    # Overseas offices
    SecretariatEntity("UNOG", "UN Office at Geneva", ("UNOG", "Geneva", "Office at Geneva"), True),
    SecretariatEntity("UNOV", "UN Office at Vienna", ("UNOV", "Vienna", "Office at Vienna"), True),
    SecretariatEntity("UNON", "UN Office at Nairobi", ("UNON", "Nairobi", "Office at Nairobi"), True),
    # Regional commissions
    SecretariatEntity("ECA", "Economic Commission for Africa",
                      ("ECA", "Economic Commission for Africa", "UNECA"), True),
    SecretariatEntity("ECE", "Economic Commission for Europe",
                      ("ECE", "Economic Commission for Europe", "UNECE"), True),
    SecretariatEntity("ECLAC", "Economic Commission for Latin America and the Caribbean",
                      ("ECLAC", "Latin America and the Caribbean", "CEPAL"), True),
    SecretariatEntity("ESCAP", "Economic and Social Commission for Asia and the Pacific",
                      ("ESCAP", "Asia and the Pacific", "Asia Pacific"), True),
    SecretariatEntity("ESCWA", "Economic and Social Commission for Western Asia",
                      ("ESCWA", "Western Asia"), True),
    # Tribunals
    SecretariatEntity("IRMCT", "International Residual Mechanism for Criminal Tribunals",
                      ("IRMCT", "Residual Mechanism", "Criminal Tribunals"), True),
    SecretariatEntity("ICJ", "International Court of Justice",
                      ("ICJ", "International Court of Justice", "World Court"), True),
)


def is_secretariat(short_agency: Optional[str]) -> bool:
    name = (short_agency or "").strip().lower()
    return "secretariat" in name or name in ("un", "united nations")


def effective_agency(short_agency: Optional[str], department: Optional[str]) -> Optional[str]:
    """
    Agency a posting is reported under.

    Non-Secretariat agencies are returned unchanged. Secretariat postings are
    attributed to the first separately listed entity whose keyword appears in
    the department, else to "UN Secretariat". Keyword matching is a
    case-insensitive substring test, checked in declaration order.
    """
    if not is_secretariat(short_agency):
        return short_agency
    dept = (department or "").strip().lower()
    if not dept:
        return SECRETARIAT
    for entity in SECRETARIAT_ENTITIES:
        if not entity.show_as_separate:
            continue
        for keyword in entity.keywords:
            if keyword.lower() in dept:
                return entity.short_name
    return SECRETARIAT


def is_separate_entity(agency: Optional[str]) -> bool:
    name = (agency or "").lower()
    return any(e.show_as_separate and e.short_name.lower() == name for e in SECRETARIAT_ENTITIES)
