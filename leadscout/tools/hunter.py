"""
Hunter.io — email finder and domain search.
"""
from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

HUNTER_BASE = 'https://api.hunter.io/v2'


class HunterClient(ProviderClient):
    name = 'hunter'
    label = 'Hunter.io'

    def _get(self, endpoint, params):
        response = self.request('GET', f'{HUNTER_BASE}/{endpoint}', params={**params, 'api_key': self.api_key})
        return response.json().get('data') or {}

    def find_email(self, first_name, last_name, domain) -> ToolResult:
        empty = {'email': None, 'confidence': 0}
        if not self.configured:
            return self.not_configured(empty, 'HUNTER_API_KEY')
        try:
            data = self._get('email-finder', {'domain': domain, 'first_name': first_name, 'last_name': last_name})
        except (ProviderError, ValueError) as e:
            return ToolResult(data=empty, error=f"Hunter email find failed: {e}")
        return ToolResult(data={'email': data.get('email'), 'confidence': data.get('confidence') or 0})

    def domain_search(self, domain) -> ToolResult:
        if not self.configured:
            return self.not_configured({'emails': []}, 'HUNTER_API_KEY')
        try:
            data = self._get('domain-search', {'domain': domain})
        except (ProviderError, ValueError) as e:
            return ToolResult(data={'emails': []}, error=f"Hunter domain search failed: {e}")
        emails = [
            {
                'email': e.get('value'),
                'first_name': e.get('first_name'),
                'last_name': e.get('last_name'),
                'position': e.get('position'),
                'confidence': e.get('confidence'),
            }
            for e in data.get('emails') or []
        ]
        return ToolResult(data={'emails': emails})
