"""
Jina Reader — fetch any URL as clean text. Works without a key (rate limited).
"""
from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

JINA_BASE = 'https://r.jina.ai'

# Keep page text within the LLM context budget
MAX_CONTENT_CHARS = 10000


class JinaClient(ProviderClient):
    name = 'jina'
    label = 'Jina Reader'
    requires_key = False

    def read_url(self, url) -> ToolResult:
        headers = {'Accept': 'text/plain'}
        if self.api_key:
            headers['Authorization'] = f'Bearer {self.api_key}'
        try:
            response = self.request('GET', f'{JINA_BASE}/{url}', headers=headers)
        except ProviderError as e:
            return ToolResult(data={'content': ''}, error=str(e))
        return ToolResult(data={'content': response.text[:MAX_CONTENT_CHARS]})
