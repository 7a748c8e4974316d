"""
Agent tool definitions — one frozen input type per tool name.

Each input class carries the JSON schema the model sees and a from_args()
constructor that validates what the model sent back. A ToolSpec binds one
input class to the stage method that handles it; the agent executor is the
only caller of from_args().
"""
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Dict, Optional, Tuple


class ToolArgumentError(ValueError):
    """Model-supplied tool arguments failed validation."""


_JSON_TYPES = {
    'string': str,
    'integer': int,
    'number': (int, float),
    'boolean': bool,
    'array': list,
}


def _check_type(tool, name, value, prop):
    expected = prop.get('type')
    py_type = _JSON_TYPES.get(expected)
    if py_type is None or value is None:
        return value
    # bool is an int subclass; never accept it for numeric fields
    if expected in ('integer', 'number') and isinstance(value, bool):
        raise ToolArgumentError(f"{tool}: '{name}' must be a {expected}")
    if expected == 'integer' and isinstance(value, float) and value.is_integer():
        value = int(value)
    if not isinstance(value, py_type):
        raise ToolArgumentError(f"{tool}: '{name}' must be a{'n' if expected[0] in 'aei' else ''} {expected}")
    if expected == 'array':
        item_type = _JSON_TYPES.get((prop.get('items') or {}).get('type'))
        if item_type and not all(isinstance(v, item_type) for v in value):
            raise ToolArgumentError(f"{tool}: every item of '{name}' must be a {prop['items']['type']}")
        return tuple(value)
    if 'minimum' in prop and value < prop['minimum']:
        raise ToolArgumentError(f"{tool}: '{name}' must be >= {prop['minimum']}")
    if 'maximum' in prop and value > prop['maximum']:
        raise ToolArgumentError(f"{tool}: '{name}' must be <= {prop['maximum']}")
    return value


class ToolInput:
    """Base for tool inputs. Subclasses are frozen dataclasses with a SCHEMA."""
    TOOL = ''
    SCHEMA: Dict[str, Any] = {}

    @classmethod
    def from_args(cls, args):
        if not isinstance(args, dict):
            raise ToolArgumentError(f"{cls.TOOL}: arguments must be an object")
        props = cls.SCHEMA.get('properties', {})
        for name in cls.SCHEMA.get('required', []):
            if args.get(name) in (None, ''):
                raise ToolArgumentError(f"{cls.TOOL}: missing required argument '{name}'")
        values = {}
        for f in fields(cls):
            values[f.name] = _check_type(cls.TOOL, f.name, args.get(f.name), props.get(f.name, {}))
        return cls(**values)

    def to_dict(self):
        out = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if value is not None:
                out[f.name] = list(value) if isinstance(value, tuple) else value
        return out


def _schema(properties, required=()):
    return {'type': 'object', 'properties': properties, 'required': list(required)}


_STR = {'type': 'string'}
_STR_LIST = {'type': 'array', 'items': {'type': 'string'}}
_SCORE = {'type': 'integer', 'minimum': 0, 'maximum': 100}


# ── Discovery ────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SearchCompaniesInput(ToolInput):
    TOOL = 'searchCompanies'
    SCHEMA = _schema({
        'query': {**_STR, 'description': 'Industry or keyword to search for'},
        'location': {**_STR, 'description': 'Geographic location filter'},
        'employee_range': {**_STR, 'description': 'Employee count range like "11,50" or "51,200"'},
    }, required=['query'])

    query: str
    location: Optional[str] = None
    employee_range: Optional[str] = None


@dataclass(frozen=True)
class SearchPeopleInput(ToolInput):
    TOOL = 'searchPeople'
    SCHEMA = _schema({
        'titles': {**_STR_LIST, 'description': 'Job titles to search for, e.g. ["CTO", "VP Engineering"]'},
        'domain': {**_STR, 'description': 'Company domain to search within, e.g. "acme.com"'},
    }, required=['titles'])

    titles: Tuple[str, ...]
    domain: Optional[str] = None


@dataclass(frozen=True)
class ScrapeWebsiteInput(ToolInput):
    TOOL = 'scrapeWebsite'
    SCHEMA = _schema({
        'url': {**_STR, 'description': 'The URL to scrape (company about page or team page)'},
    }, required=['url'])

    url: str

    @classmethod
    def from_args(cls, args):
        parsed = super().from_args(args)
        if not parsed.url.startswith(('http://', 'https://')):
            raise ToolArgumentError(f"{cls.TOOL}: 'url' must be an http(s) URL")
        return parsed


@dataclass(frozen=True)
class FindEmailInput(ToolInput):
    TOOL = 'findEmail'
    SCHEMA = _schema({
        'first_name': {**_STR, 'description': 'First name of the person'},
        'last_name': {**_STR, 'description': 'Last name of the person'},
        'domain': {**_STR, 'description': 'Company domain, e.g. "acme.com"'},
    }, required=['first_name', 'last_name', 'domain'])

    first_name: str
    last_name: str
    domain: str


@dataclass(frozen=True)
class SaveLeadInput(ToolInput):
    TOOL = 'saveLead'
    SCHEMA = _schema({
        'name': {**_STR, 'description': 'Full name of the person'},
        'company': {**_STR, 'description': 'Company name'},
        'position': {**_STR, 'description': 'Job title / position'},
        'email': {**_STR, 'description': 'Email address if found'},
        'linkedin_url': {**_STR, 'description': 'LinkedIn profile URL if found'},
        'confidence_score': {**_SCORE, 'description': 'How confident you are this person matches the ICP (0-100)'},
        'discovery_source': {**_STR, 'description': 'How you found this lead, e.g. "Apollo company search"'},
        'ai_summary': {**_STR, 'description': '1-2 sentence explanation of why this person is a good lead'},
        'signals': {**_STR_LIST, 'description': 'Discovery signals, e.g. ["Matches target role"]'},
    }, required=['name', 'confidence_score'])

    name: str
    confidence_score: int
    company: Optional[str] = None
    position: Optional[str] = None
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    discovery_source: Optional[str] = None
    ai_summary: Optional[str] = None
    signals: Tuple[str, ...] = ()

    @classmethod
    def from_args(cls, args):
        parsed = super().from_args(args)
        if parsed.signals is None:
            return replace(parsed, signals=())
        return parsed


# ── Enrichment ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class EnrichPersonInput(ToolInput):
    TOOL = 'enrichPerson'
    SCHEMA = _schema({
        'email': {**_STR, 'description': 'Email to look up'},
        'first_name': _STR,
        'last_name': _STR,
        'company': _STR,
        'linkedin_url': _STR,
    })

    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    company: Optional[str] = None
    linkedin_url: Optional[str] = None


@dataclass(frozen=True)
class VerifyEmailInput(ToolInput):
    TOOL = 'verifyEmail'
    SCHEMA = _schema({'email': {**_STR, 'description': 'Email to verify'}}, required=['email'])

    email: str

    @classmethod
    def from_args(cls, args):
        parsed = super().from_args(args)
        if '@' not in parsed.email:
            raise ToolArgumentError(f"{cls.TOOL}: '{parsed.email}' is not an email address")
        return parsed


@dataclass(frozen=True)
class ReadCompanyWebsiteInput(ToolInput):
    TOOL = 'readCompanyWebsite'
    SCHEMA = _schema({'url': {**_STR, 'description': 'Company URL to read'}}, required=['url'])

    url: str


@dataclass(frozen=True)
class UpdateLeadInput(ToolInput):
    TOOL = 'updateLead'
    SCHEMA = _schema({
        'lead_id': {**_STR, 'description': 'The lead ID to update'},
        'email': {**_STR, 'description': 'Updated/verified email'},
        'linkedin_url': {**_STR, 'description': 'LinkedIn URL if found'},
        'position': {**_STR, 'description': 'Corrected job title'},
        'company': {**_STR, 'description': 'Corrected company name'},
        'signals': {**_STR_LIST, 'description': 'Additional signals from enrichment'},
        'ai_summary': {**_STR, 'description': 'Updated AI summary with enrichment data'},
    }, required=['lead_id'])

    lead_id: str
    email: Optional[str] = None
    linkedin_url: Optional[str] = None
    position: Optional[str] = None
    company: Optional[str] = None
    signals: Optional[Tuple[str, ...]] = None
    ai_summary: Optional[str] = None


# ── Qualification ────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class ScoreLeadInput(ToolInput):
    TOOL = 'scoreLead'
    SCHEMA = _schema({
        'lead_id': {**_STR, 'description': 'The lead ID to score'},
        'confidence_score': {**_SCORE, 'description': 'ICP fit score 0-100'},
        'ai_summary': {**_STR, 'description': '2-3 sentence analysis of the score and ICP fit'},
        'signals': {**_STR_LIST, 'description': 'Qualifying signals, e.g. ["Perfect role match"]'},
    }, required=['lead_id', 'confidence_score', 'ai_summary', 'signals'])

    lead_id: str
    confidence_score: int
    ai_summary: str
    signals: Tuple[str, ...]


@dataclass(frozen=True)
class ToolSpec:
    name: str
    description: str
    input_cls: type
    handler: Callable[[ToolInput], Any]

    def openai_schema(self) -> dict:
        return {
            'type': 'function',
            'function': {
                'name': self.name,
                'description': self.description,
                'parameters': self.input_cls.SCHEMA,
            },
        }


def merge_signals(existing, new):
    """Order-preserving union: existing tags first, then unseen new ones."""
    merged = []
    for tag in list(existing or []) + list(new or []):
        if tag not in merged:
            merged.append(tag)
    return merged
