import unittest

from onboarding_portal.components.selection_state import Option, SelectionController, filter_options
from onboarding_portal.enums import SelectionMode


DEPARTMENTS = [
    Option(1, "Engineering", "ENG"),
    Option(2, "Sales", "SLS"),
    Option(3, "Human Resources", "HR"),
    Option(4, "Finance", "FIN"),
    Option(5, "Legal", "LEG"),
    Option(6, "Marketing", "MKT"),
]


class _Owner:
    """Parent that owns the bound value and writes it back like a form would."""

    def __init__(self):
        self.changes = []
        self.controller = None

    def on_change(self, value):
        self.changes.append(value)
        self.controller.value = value


def _controller(owner=None, **kwargs):
    owner = owner or _Owner()
    controller = SelectionController(kwargs.pop("value", None), owner.on_change, options=DEPARTMENTS, **kwargs)
    owner.controller = controller
    return controller, owner


class FilterOptionsTests(unittest.TestCase):
    def test_matches_label_case_insensitively(self):
        options = [Option(1, "Engineering"), Option(2, "Sales")]
        self.assertEqual(filter_options(options, "eng"), [Option(1, "Engineering")])

    def test_matches_secondary_label(self):
        self.assertEqual(filter_options(DEPARTMENTS, "hr"), [DEPARTMENTS[2]])

    def test_empty_query_returns_everything(self):
        self.assertEqual(filter_options(DEPARTMENTS, ""), DEPARTMENTS)

    def test_visible_options_are_capped(self):
        controller, _ = _controller(max_local_results=4)
        controller.activate()
        controller.set_query("e")

        matches = [opt for opt in DEPARTMENTS if "e" in opt.label.lower() or "e" in opt.secondary_label.lower()]
        self.assertEqual(controller.matching_options, matches)
        self.assertEqual(controller.visible_options, matches[:4])
        self.assertTrue(controller.has_more_local)

    def test_no_more_indicator_when_under_cap(self):
        controller, _ = _controller(max_local_results=4)
        controller.activate()
        controller.set_query("sal")
        self.assertEqual(controller.visible_options, [DEPARTMENTS[1]])
        self.assertFalse(controller.has_more_local)


class SingleSelectTests(unittest.TestCase):
    def test_activate_shows_capped_unfiltered_list(self):
        controller, _ = _controller(max_local_results=3)
        self.assertTrue(controller.activate())
        self.assertTrue(controller.is_open)
        self.assertEqual(controller.query, "")
        self.assertEqual(controller.visible_options, DEPARTMENTS[:3])

    def test_select_closes_panel_and_clears_query(self):
        controller, owner = _controller()
        controller.activate()
        controller.set_query("sal")
        controller.select(DEPARTMENTS[1])

        self.assertFalse(controller.is_open)
        self.assertEqual(controller.query, "")
        self.assertEqual(owner.changes, [2])
        self.assertEqual(controller.value, 2)
        self.assertEqual(controller.cache, {2: DEPARTMENTS[1]})

    def test_summary_shows_full_value(self):
        controller, _ = _controller(value=1)
        self.assertEqual(controller.summary("Pick"), "Engineering (ENG)")
        self.assertEqual(controller.summary("Pick", full=False), "ENG")

    def test_summary_falls_back_to_placeholder(self):
        controller, _ = _controller()
        self.assertEqual(controller.summary("Pick one"), "Pick one")

    def test_clear_unsets_value_and_closes(self):
        controller, owner = _controller(value=3)
        controller.activate()
        self.assertTrue(controller.clear())
        self.assertEqual(owner.changes, [None])
        self.assertIsNone(controller.value)
        self.assertFalse(controller.is_open)
        self.assertEqual(controller.cache, {})

    def test_clear_unavailable_when_required(self):
        controller, owner = _controller(value=3, required=True, allow_clear=True)
        self.assertFalse(controller.clear_available)
        self.assertFalse(controller.clear())
        self.assertEqual(owner.changes, [])
        self.assertEqual(controller.value, 3)

    def test_clear_unavailable_when_not_allowed(self):
        controller, _ = _controller(value=3, allow_clear=False)
        self.assertFalse(controller.clear_available)

    def test_remove_in_single_mode_unsets(self):
        controller, owner = _controller(value=4)
        controller.activate()
        controller.remove(4)
        self.assertEqual(owner.changes, [None])
        self.assertFalse(controller.is_open)

    def test_on_change_receives_proposal_without_write_back(self):
        changes = []
        controller = SelectionController(None, changes.append, options=DEPARTMENTS)
        controller.activate()
        controller.select(DEPARTMENTS[0])
        self.assertEqual(changes, [1])
        # Controlled: nothing changes until the owner binds the new value.
        self.assertIsNone(controller.value)

    def test_disabled_is_inert(self):
        controller, owner = _controller(disabled=True)
        self.assertFalse(controller.activate())
        controller.set_query("eng")
        controller.select(DEPARTMENTS[0])
        self.assertFalse(controller.handle_key("Arrow Down"))
        self.assertFalse(controller.is_open)
        self.assertEqual(controller.query, "")
        self.assertEqual(owner.changes, [])


class MultiSelectTests(unittest.TestCase):
    def test_toggles_keep_panel_open_and_query(self):
        controller, owner = _controller(mode=SelectionMode.MULTI)
        controller.activate()
        controller.set_query("a")
        controller.select(DEPARTMENTS[1])
        controller.select(DEPARTMENTS[3])
        controller.select(DEPARTMENTS[1])

        self.assertTrue(controller.is_open)
        self.assertEqual(controller.query, "a")
        self.assertEqual(owner.changes, [[2], [2, 4], [4]])
        self.assertEqual(controller.value, [4])

    def test_value_keeps_selection_order(self):
        controller, _ = _controller(mode=SelectionMode.MULTI)
        controller.activate()
        for index in (4, 0, 2):
            controller.select(DEPARTMENTS[index])
        self.assertEqual(controller.value, [5, 1, 3])
        self.assertEqual(controller.summary(), "LEG +2")

    def test_deselecting_last_item_gives_empty_list(self):
        controller, owner = _controller(mode=SelectionMode.MULTI, value=[2])
        controller.activate()
        controller.set_query("sa")
        controller.select(DEPARTMENTS[1])
        self.assertEqual(owner.changes, [[]])
        self.assertTrue(controller.is_open)
        self.assertEqual(controller.query, "sa")

    def test_remove_drops_one_id(self):
        controller, owner = _controller(mode=SelectionMode.MULTI, value=[1, 2, 3])
        controller.remove(2)
        self.assertEqual(owner.changes, [[1, 3]])

    def test_select_all_then_deselect_all(self):
        controller, owner = _controller(mode=SelectionMode.MULTI, select_all=True, max_local_results=5)
        controller.activate()
        self.assertEqual(len(controller.visible_options), 5)

        controller.toggle_all()
        self.assertEqual(sorted(controller.value), [1, 2, 3, 4, 5])
        self.assertTrue(controller.all_visible_selected)

        controller.toggle_all()
        self.assertEqual(controller.value, [])
        self.assertTrue(controller.is_open)

    def test_select_all_keeps_hidden_selections(self):
        controller, _ = _controller(mode=SelectionMode.MULTI, select_all=True, value=[6], max_local_results=5)
        controller.activate()
        controller.toggle_all()
        self.assertEqual(controller.value, [6, 1, 2, 3, 4, 5])
        controller.toggle_all()
        self.assertEqual(controller.value, [6])

    def test_select_all_requires_the_affordance(self):
        controller, owner = _controller(mode=SelectionMode.MULTI)
        controller.activate()
        controller.toggle_all()
        self.assertEqual(owner.changes, [])

    def test_clear_all_returns_empty_list(self):
        controller, owner = _controller(mode=SelectionMode.MULTI, value=[1, 2])
        self.assertTrue(controller.clear())
        self.assertEqual(owner.changes, [[]])


class KeyboardTests(unittest.TestCase):
    def test_arrows_wrap_both_ends(self):
        controller, _ = _controller(max_local_results=3)
        controller.activate()

        controller.handle_key("Arrow Down")
        self.assertEqual(controller.highlighted_index, 0)
        controller.handle_key("Arrow Up")
        self.assertEqual(controller.highlighted_index, 2)
        controller.handle_key("Arrow Down")
        self.assertEqual(controller.highlighted_index, 0)

    def test_arrow_up_from_nothing_goes_to_last(self):
        controller, _ = _controller(max_local_results=3)
        controller.activate()
        controller.handle_key("ArrowUp")
        self.assertEqual(controller.highlighted_index, 2)

    def test_enter_commits_highlighted(self):
        controller, owner = _controller()
        controller.activate()
        controller.set_query("a")
        controller.handle_key("Arrow Down")
        controller.handle_key("Arrow Down")
        self.assertTrue(controller.handle_key("Enter"))
        self.assertEqual(owner.changes, [controller.value])
        self.assertFalse(controller.is_open)

    def test_enter_without_highlight_does_nothing(self):
        controller, owner = _controller()
        controller.activate()
        self.assertFalse(controller.handle_key("Enter"))
        self.assertEqual(owner.changes, [])

    def test_escape_closes(self):
        controller, _ = _controller()
        controller.activate()
        controller.set_query("eng")
        self.assertTrue(controller.handle_key("Escape"))
        self.assertFalse(controller.is_open)
        self.assertEqual(controller.query, "")

    def test_keys_ignored_once_closed(self):
        controller, _ = _controller()
        controller.activate()
        controller.deactivate()
        self.assertFalse(controller.handle_key("Arrow Down"))
        self.assertEqual(controller.highlighted_index, -1)

    def test_hover_moves_highlight(self):
        controller, _ = _controller()
        controller.activate()
        controller.hover(2)
        self.assertEqual(controller.highlighted_index, 2)
        controller.hover(99)
        self.assertEqual(controller.highlighted_index, 2)


class SelectedOptionCacheTests(unittest.TestCase):
    def test_initial_option_labels_unknown_id(self):
        hint = Option(42, "Jane Doe", "jane@example.com")
        controller = SelectionController(42, None, on_search=_never_called, initial_option=hint)
        self.assertEqual(controller.summary("Pick"), "Jane Doe (jane@example.com)")

    def test_initial_option_ignored_when_id_differs(self):
        hint = Option(7, "Someone Else")
        controller = SelectionController(42, None, on_search=_never_called, initial_option=hint)
        self.assertEqual(controller.cache, {})
        self.assertEqual(controller.summary("Pick"), "42")

    def test_external_clear_drops_cache(self):
        hint = Option(42, "Jane Doe")
        controller = SelectionController(42, None, on_search=_never_called, initial_option=hint)
        controller.value = None
        self.assertEqual(controller.cache, {})
        self.assertEqual(controller.summary("Pick"), "Pick")

    def test_lookup_prefers_static_options_over_cache(self):
        controller, _ = _controller(value=1, initial_option=Option(1, "Old name"))
        self.assertEqual(controller.resolve_option(1), DEPARTMENTS[0])

    def test_multi_value_change_prunes_cache(self):
        hints = [Option(10, "Ann"), Option(11, "Bob")]
        controller = SelectionController([10, 11], None, mode=SelectionMode.MULTI, on_search=_never_called, initial_option=hints)
        controller.value = [11]
        self.assertEqual(controller.cache, {11: hints[1]})


async def _never_called(query):
    raise AssertionError(f"unexpected search for {query!r}")


class OptionPayloadTests(unittest.TestCase):
    def test_dropdown_dto(self):
        opt = Option.from_payload({"id": "9", "key": "Jane Doe", "value": "jane@example.com"})
        self.assertEqual(opt, Option(9, "Jane Doe", "jane@example.com"))

    def test_label_payload(self):
        self.assertEqual(Option.from_payload({"id": 3, "label": "Sales"}), Option(3, "Sales"))

    def test_missing_label_uses_secondary(self):
        self.assertEqual(Option.from_payload({"id": 3, "key": "", "value": "Sales"}), Option(3, "Sales"))

    def test_rejects_other_types(self):
        with self.assertRaises(TypeError):
            Option.from_payload(("id", 1))


if __name__ == "__main__":
    unittest.main()
