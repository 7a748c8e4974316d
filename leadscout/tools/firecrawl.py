"""
Firecrawl — scrape a page to markdown.
"""
from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

FIRECRAWL_BASE = 'https://api.firecrawl.dev/v1'


class FirecrawlClient(ProviderClient):
    name = 'firecrawl'
    label = 'Firecrawl'
    timeout_seconds = 60

    def scrape_url(self, url) -> ToolResult:
        empty = {'markdown': '', 'metadata': None}
        if not self.configured:
            return self.not_configured(empty, 'FIRECRAWL_API_KEY')
        try:
            response = self.request(
                'POST', f'{FIRECRAWL_BASE}/scrape',
                json={'url': url, 'formats': ['markdown']},
                headers={'Content-Type': 'application/json', 'Authorization': f'Bearer {self.api_key}'},
                timeout=self.timeout_seconds,
            )
            data = response.json().get('data') or {}
        except (ProviderError, ValueError) as e:
            return ToolResult(data=empty, error=f"Firecrawl scrape failed: {e}")
        return ToolResult(data={'markdown': data.get('markdown') or '', 'metadata': data.get('metadata')})
