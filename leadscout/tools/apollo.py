"""
Apollo.io — company and people search (read-only endpoints).
"""
import logging

from leadscout.tools.base import ProviderClient, ProviderError, ToolResult

logger = logging.getLogger('tools.apollo')

APOLLO_BASE = 'https://api.apollo.io/v1'


class ApolloClient(ProviderClient):
    name = 'apollo'
    label = 'Apollo'

    def _post(self, endpoint, payload):
        response = self.request(
            'POST', f'{APOLLO_BASE}/{endpoint}', json=payload,
            headers={'Content-Type': 'application/json', 'Cache-Control': 'no-cache', 'X-Api-Key': self.api_key},
        )
        return response.json()

    def search_companies(self, query, location=None, employee_range=None, per_page=10) -> ToolResult:
        """Search organizations by keyword, location and employee-count band ("11,50")."""
        if not self.configured:
            return self.not_configured({'companies': []}, 'APOLLO_API_KEY')

        payload = {'per_page': per_page or 10}
        if query:
            payload['q_organization_keyword_tags'] = [query]
        if location:
            payload['organization_locations'] = [location]
        if employee_range:
            payload['organization_num_employees_ranges'] = [employee_range]

        try:
            data = self._post('mixed_companies/search', payload)
        except ProviderError as e:
            return ToolResult(data={'companies': []}, error=str(e))
        except ValueError:
            return ToolResult(data={'companies': []}, error='Apollo returned invalid JSON')

        companies = [
            {
                'id': org.get('id'),
                'name': org.get('name'),
                'website': org.get('website_url'),
                'domain': org.get('primary_domain'),
                'industry': org.get('industry'),
                'employees': org.get('estimated_num_employees'),
                'city': org.get('city'),
                'state': org.get('state'),
                'country': org.get('country'),
                'description': org.get('short_description'),
                'linkedin_url': org.get('linkedin_url'),
                'founded_year': org.get('founded_year'),
            }
            for org in data.get('organizations') or []
        ]
        logger.info("search_companies(%r) → %d companies", query, len(companies))
        return ToolResult(data={'companies': companies})

    def search_people(self, titles=None, domain=None, organization_id=None, per_page=10) -> ToolResult:
        """Search people by job title, optionally inside one company domain."""
        if not self.configured:
            return self.not_configured({'people': []}, 'APOLLO_API_KEY')

        payload = {'per_page': per_page or 10}
        if titles:
            payload['person_titles'] = list(titles)
        if domain:
            payload['q_organization_domains'] = domain
        if organization_id:
            payload['organization_ids'] = [organization_id]

        try:
            data = self._post('mixed_people/search', payload)
        except ProviderError as e:
            return ToolResult(data={'people': []}, error=str(e))
        except ValueError:
            return ToolResult(data={'people': []}, error='Apollo returned invalid JSON')

        people = []
        for p in data.get('people') or []:
            org = p.get('organization') or {}
            people.append({
                'id': p.get('id'),
                'first_name': p.get('first_name'),
                'last_name': p.get('last_name'),
                'name': p.get('name'),
                'title': p.get('title'),
                'email': p.get('email'),
                'linkedin_url': p.get('linkedin_url'),
                'company': org.get('name'),
                'company_domain': org.get('primary_domain'),
                'city': p.get('city'),
                'state': p.get('state'),
                'country': p.get('country'),
            })
        logger.info("search_people(titles=%s, domain=%s) → %d people", titles, domain, len(people))
        return ToolResult(data={'people': people})
