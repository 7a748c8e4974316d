"""
Capability adapters — one client per external data provider, bundled for
the agent stages.

Build the bundle once per job from an explicit ProviderConfig:

    caps = build_capabilities(ProviderConfig.from_env())
    caps.search_companies('fintech', location='Austin')
"""
import logging
from dataclasses import dataclass
from typing import Dict

from leadscout.config import ProviderConfig
from leadscout.services.circuit_breaker import get_breaker
from leadscout.tools.apollo import ApolloClient
from leadscout.tools.base import ToolResult
from leadscout.tools.firecrawl import FirecrawlClient
from leadscout.tools.hunter import HunterClient
from leadscout.tools.jina import JinaClient
from leadscout.tools.pdl import PDLClient
from leadscout.tools.zerobounce import ZeroBounceClient

logger = logging.getLogger('tools')

__all__ = ['Capabilities', 'ToolResult', 'build_capabilities', 'check_capabilities']


@dataclass
class Capabilities:
    apollo: ApolloClient
    hunter: HunterClient
    pdl: PDLClient
    firecrawl: FirecrawlClient
    jina: JinaClient
    zerobounce: ZeroBounceClient

    def search_companies(self, query, location=None, employee_range=None, per_page=10) -> ToolResult:
        return self.apollo.search_companies(query, location=location, employee_range=employee_range, per_page=per_page)

    def search_people(self, titles=None, domain=None, organization_id=None, per_page=10) -> ToolResult:
        return self.apollo.search_people(titles=titles, domain=domain, organization_id=organization_id, per_page=per_page)

    def find_email(self, first_name, last_name, domain) -> ToolResult:
        return self.hunter.find_email(first_name, last_name, domain)

    def enrich_person(self, **kwargs) -> ToolResult:
        return self.pdl.enrich_person(**kwargs)

    def verify_email(self, email) -> ToolResult:
        return self.zerobounce.verify_email(email)

    def read_url(self, url) -> ToolResult:
        return self.jina.read_url(url)

    def scrape_website(self, url) -> ToolResult:
        """Firecrawl markdown when configured, otherwise Jina plain text."""
        if self.firecrawl.configured:
            return self.firecrawl.scrape_url(url)
        result = self.jina.read_url(url)
        return ToolResult(data={'markdown': result.data.get('content', ''), 'metadata': None}, error=result.error)


def build_capabilities(config: ProviderConfig, redis_client=None) -> Capabilities:
    """Instantiate every adapter with its key and its named circuit breaker."""
    def breaker(name):
        return get_breaker(name, redis_client)

    return Capabilities(
        apollo=ApolloClient(config.apollo_api_key, breaker=breaker('apollo')),
        hunter=HunterClient(config.hunter_api_key, breaker=breaker('hunter')),
        pdl=PDLClient(config.pdl_api_key, breaker=breaker('pdl')),
        firecrawl=FirecrawlClient(config.firecrawl_api_key, breaker=breaker('firecrawl')),
        jina=JinaClient(config.jina_api_key, breaker=breaker('jina')),
        zerobounce=ZeroBounceClient(config.zerobounce_api_key, breaker=breaker('zerobounce')),
    )


def check_capabilities(caps: Capabilities) -> Dict[str, dict]:
    """
    Run one cheap probe per provider and report {ok, message} for each.

    Unconfigured providers are reported without making a network call.
    """
    probes = {
        'apollo': lambda: caps.apollo.search_companies('software', per_page=1),
        'hunter': lambda: caps.hunter.domain_search('stripe.com'),
        'pdl': lambda: caps.pdl.enrich_person(email='test@example.com'),
        'firecrawl': lambda: caps.firecrawl.scrape_url('https://example.com'),
        'jina': lambda: caps.jina.read_url('https://example.com'),
        'zerobounce': lambda: caps.zerobounce.verify_email('test@example.com'),
    }
    report = {}
    for name, probe in probes.items():
        client = getattr(caps, name)
        if not client.configured:
            report[name] = {'ok': False, 'message': f'{client.label} API key not configured'}
            continue
        result = probe()
        # PDL answers a miss with 404, which still proves the key works
        if result.ok or (name == 'pdl' and result.error == 'Person not found in PDL database.'):
            report[name] = {'ok': True, 'message': 'Connected'}
        else:
            report[name] = {'ok': False, 'message': result.error}
        logger.info("Capability probe %s: %s", name, report[name]['message'])
    return report
