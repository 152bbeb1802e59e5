import unittest

from onboarding_portal.components.selection_state import Option
from onboarding_portal.services.lookup_client import LookupClientError
from onboarding_portal.services.search_loaders import create_search_loader, row_to_option, static_options


class SearchLoaderTests(unittest.IsolatedAsyncioTestCase):
    async def test_maps_dropdown_rows(self):
        seen = []

        async def fetch(term):
            seen.append(term)
            return [{"id": 5, "key": "Priya Nair", "value": "priya@example.com"}]

        loader = create_search_loader(fetch)
        options = await loader("  priya ")
        self.assertEqual(seen, ["priya"])
        self.assertEqual(options, [Option(5, "Priya Nair", "priya@example.com")])

    async def test_custom_keys(self):
        async def fetch(term):
            return [{"id": 1, "itemName": "Onboarding"}]

        loader = create_search_loader(fetch, label_key="itemName", secondary_key=None)
        self.assertEqual(await loader("on"), [Option(1, "Onboarding")])

    async def test_failure_logs_and_returns_empty(self):
        async def search_group_leads(term):
            raise LookupClientError("GET /group/searchGL returned 500", status_code=500)

        loader = create_search_loader(search_group_leads)
        with self.assertLogs("onboarding_portal.services.search_loaders", level="ERROR") as captured:
            self.assertEqual(await loader("ann"), [])
        self.assertTrue(any("search_group_leads" in msg for msg in captured.output))


class StaticOptionsTests(unittest.TestCase):
    def test_skips_malformed_rows(self):
        rows = [{"id": 1, "key": "Engineering", "value": "ENG"}, {"key": "No id"}, {"id": "x", "key": "Bad"}]
        with self.assertLogs("onboarding_portal.services.search_loaders", level="WARNING"):
            options = static_options(rows)
        self.assertEqual(options, [Option(1, "Engineering", "ENG")])

    def test_row_without_key_uses_value(self):
        self.assertEqual(row_to_option({"id": 2, "value": "Sales"}), Option(2, "Sales"))


if __name__ == "__main__":
    unittest.main()
