from __future__ import annotations
"""
Project folder templates.

Two templates exist:
- LUNGO  complex projects, numbered top-level folders with sub-folders
- BREVE  simple projects, four flat folders

For each template this module exposes the folder tree, the flattened list of
valid destination folders, a text outline for LLM prompts, and the rule table
used by the deterministic classifier.
"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional

from .errors import ConfigError

FolderTree = Mapping[str, "FolderTree"]

# ---------------------------------------------------------------------------
# Folder structures
# ---------------------------------------------------------------------------

TEMPLATE_LUNGO: FolderTree = {
    "1_CONSEGNA": {},
    "2_PERMIT": {},
    "3_PROGETTO": {
        "ARC": {},
        "CME": {},
        "CRONO_CAPITOLATI_MANUT": {},
        "IE": {},
        "IM": {},
        "IS": {},
        "REL": {},
        "SIC": {},
        "STR": {},
        "X_RIF": {},
    },
    "4_MATERIALE_RICEVUTO": {},
    "5_CANTIERE": {
        "0_PSC_FE": {},
        "IMPRESA": {
            "CONTRATTO": {},
            "CONTROLLI": {},
            "DOCUMENTI": {},
        },
    },
    "6_VERBALI_NOTIF_COMUNICAZIONI": {
        "COMUNICAZIONI": {},
        "NP": {},
        "ODS": {},
        "VERBALI": {},
    },
    "7_SOPRALLUOGHI": {},
    "8_VARIANTI": {},
    "9_PARCELLA": {},
    "10_INCARICO": {},
}

TEMPLATE_BREVE: FolderTree = {
    "CONSEGNA": {},
    "ELABORAZIONI": {},
    "MATERIALE_RICEVUTO": {},
    "SOPRALLUOGHI": {},
}

# Short descriptions shown in the prompt outline.
FOLDER_DESCRIPTIONS: Dict[str, str] = {
    "1_CONSEGNA": "Documenti cliente e brief progetto",
    "2_PERMIT": "Permessi e autorizzazioni",
    "3_PROGETTO": "Elaborati tecnici principali",
    "3_PROGETTO/ARC": "Architettonici (piante, prospetti, sezioni)",
    "3_PROGETTO/CME": "Computo metrico estimativo",
    "3_PROGETTO/CRONO_CAPITOLATI_MANUT": "Cronoprogramma, capitolati e manutenzione",
    "3_PROGETTO/IE": "Impianti elettrici",
    "3_PROGETTO/IM": "Impianti meccanici",
    "3_PROGETTO/IS": "Impianti speciali",
    "3_PROGETTO/REL": "Relazioni tecniche",
    "3_PROGETTO/SIC": "Sicurezza cantiere",
    "3_PROGETTO/STR": "Strutturali (calcoli, carpenteria)",
    "3_PROGETTO/X_RIF": "Riferimenti e standard",
    "4_MATERIALE_RICEVUTO": "Documenti ricevuti da terzi",
    "5_CANTIERE": "Documentazione cantiere",
    "5_CANTIERE/0_PSC_FE": "Piano sicurezza cantiere",
    "5_CANTIERE/IMPRESA": "Documentazione impresa",
    "5_CANTIERE/IMPRESA/CONTRATTO": "Contratti",
    "5_CANTIERE/IMPRESA/CONTROLLI": "Controlli qualita",
    "5_CANTIERE/IMPRESA/DOCUMENTI": "Altri documenti impresa",
    "6_VERBALI_NOTIF_COMUNICAZIONI": "Comunicazioni ufficiali",
    "6_VERBALI_NOTIF_COMUNICAZIONI/COMUNICAZIONI": "Comunicazioni generali",
    "6_VERBALI_NOTIF_COMUNICAZIONI/NP": "Note e promemoria",
    "6_VERBALI_NOTIF_COMUNICAZIONI/ODS": "Ordini di servizio",
    "6_VERBALI_NOTIF_COMUNICAZIONI/VERBALI": "Verbali riunioni",
    "7_SOPRALLUOGHI": "Report sopralluoghi",
    "8_VARIANTI": "Varianti progettuali",
    "9_PARCELLA": "Fatturazione e parcelle",
    "10_INCARICO": "Documenti incarico",
    "CONSEGNA": "Documenti cliente e brief",
    "ELABORAZIONI": "Elaborati tecnici",
    "MATERIALE_RICEVUTO": "Documenti terzi",
    "SOPRALLUOGHI": "Report sopralluoghi",
}

# ---------------------------------------------------------------------------
# Rule tables
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class KeywordRule:
    keywords: tuple
    folder: str


@dataclass(frozen=True)
class ExtensionRule:
    """Keyword rules for files whose extension matches `extensions`."""

    extensions: tuple
    patterns: tuple
    default: str


LUNGO_RULES: List[ExtensionRule] = [
    ExtensionRule(
        extensions=("dwg", "dxf", "skp"),
        patterns=(
            KeywordRule(("pianta", "planimetria", "plan"), "3_PROGETTO/ARC/"),
            KeywordRule(("prospetto", "prospetti"), "3_PROGETTO/ARC/"),
            KeywordRule(("sezione", "sezioni"), "3_PROGETTO/ARC/"),
            KeywordRule(("struttura", "strutturale", "trave", "pilastro"), "3_PROGETTO/STR/"),
            KeywordRule(("impianto", "idraulico", "termico"), "3_PROGETTO/IM/"),
            KeywordRule(("elettrico", "illuminazione"), "3_PROGETTO/IE/"),
        ),
        default="3_PROGETTO/",
    ),
    ExtensionRule(
        extensions=("pdf", "doc", "docx"),
        patterns=(
            KeywordRule(("relazione", "relaz", "tecnica"), "3_PROGETTO/REL/"),
            KeywordRule(("calcolo", "calcoli"), "3_PROGETTO/"),
            KeywordRule(("computo", "metrico", "capitolato"), "3_PROGETTO/CME/"),
            KeywordRule(("verbale", "riunione"), "6_VERBALI_NOTIF_COMUNICAZIONI/VERBALI/"),
            KeywordRule(("corrispondenza", "lettera"), "6_VERBALI_NOTIF_COMUNICAZIONI/COMUNICAZIONI/"),
            KeywordRule(("contratto", "incarico"), "10_INCARICO/"),
            KeywordRule(("sicurezza", "psc"), "3_PROGETTO/SIC/"),
            KeywordRule(("consegna", "richiesta"), "1_CONSEGNA/"),
            KeywordRule(("materiale", "ricevuto"), "4_MATERIALE_RICEVUTO/"),
        ),
        default="3_PROGETTO/",
    ),
    ExtensionRule(
        extensions=("jpg", "jpeg", "png", "tiff", "bmp"),
        patterns=(
            KeywordRule(("sopralluogo", "foto", "cantiere"), "7_SOPRALLUOGHI/"),
            KeywordRule(("rilievo", "survey"), "7_SOPRALLUOGHI/"),
        ),
        default="7_SOPRALLUOGHI/",
    ),
    ExtensionRule(
        extensions=("xls", "xlsx", "csv"),
        patterns=(
            KeywordRule(("computo", "metrico", "cme"), "3_PROGETTO/CME/"),
            KeywordRule(("parcella", "fattura", "preventivo"), "9_PARCELLA/"),
        ),
        default="3_PROGETTO/CME/",
    ),
]

BREVE_RULES: List[ExtensionRule] = [
    ExtensionRule(
        extensions=("pdf", "doc", "docx", "dwg", "dxf"),
        patterns=(
            KeywordRule(("relazione", "calcolo", "progetto"), "ELABORAZIONI/"),
            KeywordRule(("consegna", "richiesta"), "CONSEGNA/"),
        ),
        default="ELABORAZIONI/",
    ),
    ExtensionRule(
        extensions=("jpg", "jpeg", "png", "tiff"),
        patterns=(KeywordRule(("sopralluogo", "foto"), "SOPRALLUOGHI/"),),
        default="SOPRALLUOGHI/",
    ),
    ExtensionRule(
        extensions=("xls", "xlsx"),
        patterns=(),
        default="ELABORAZIONI/",
    ),
]

# ---------------------------------------------------------------------------
# Template registry
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProjectTemplate:
    key: str
    name: str
    structure: FolderTree
    rules: List[ExtensionRule]


PROJECT_TEMPLATES: Dict[str, ProjectTemplate] = {
    "LUNGO": ProjectTemplate("LUNGO", "LUNGO - Progetti complessi", TEMPLATE_LUNGO, LUNGO_RULES),
    "BREVE": ProjectTemplate("BREVE", "BREVE - Progetti semplici", TEMPLATE_BREVE, BREVE_RULES),
}


def get_template(key: str) -> ProjectTemplate:
    template = PROJECT_TEMPLATES.get(key.upper()) if key else None
    if template is None:
        raise ConfigError(
            f"Unknown project template: {key!r} (expected one of {sorted(PROJECT_TEMPLATES)})"
        )
    return template


def available_folders(key: str) -> List[str]:
    """Every folder of the template, parents before children, without slashes at the end."""
    folders: List[str] = []

    def _walk(tree: FolderTree, prefix: str) -> None:
        for name, children in tree.items():
            current = f"{prefix}/{name}" if prefix else name
            folders.append(current)
            if children:
                _walk(children, current)

    _walk(get_template(key).structure, "")
    return folders


def template_outline(key: str) -> str:
    """Indented outline of the template with folder descriptions."""
    lines: List[str] = []
    for folder in available_folders(key):
        depth = folder.count("/")
        leaf = folder.rsplit("/", 1)[-1]
        description = FOLDER_DESCRIPTIONS.get(folder)
        suffix = f" - {description}" if description else ""
        lines.append(f"{'  ' * depth}{leaf}/{suffix}")
    return "\n".join(lines)


def is_valid_folder(key: str, folder: str) -> bool:
    return folder.strip().rstrip("/") in available_folders(key)


def find_closest_folder(suggested: str, folders: List[str]) -> Optional[str]:
    """
    Closest template folder for a path the LLM invented.

    Case-insensitive exact match first, then the folder sharing the most
    '_'/'/'-separated terms longer than two characters. Falls back to the
    first folder. Returned with a trailing slash.
    """
    if not folders:
        return None
    wanted = suggested.strip().rstrip("/").lower()

    for folder in folders:
        if folder.lower() == wanted:
            return folder + "/"

    terms = [t for t in wanted.replace("/", "_").split("_") if len(t) > 2]
    best = folders[0]
    best_matches = 0
    for folder in folders:
        lowered = folder.lower()
        matches = sum(1 for t in terms if t in lowered)
        if matches > best_matches:
            best_matches = matches
            best = folder
    return best + "/"
