import io
import unittest

from productscraper.log import ScrapeLogger, format_duration, format_field_value


def make_logger(name: str, debug: bool = False) -> tuple[ScrapeLogger, io.StringIO]:
    stream = io.StringIO()
    return ScrapeLogger(name=f"test.log.{name}", debug=debug, stream=stream), stream


class TestFormatting(unittest.TestCase):
    def test_field_values(self):
        self.assertIn("null", format_field_value(None))
        self.assertEqual(format_field_value("short"), '"short"')
        self.assertEqual(format_field_value("x" * 60), '"' + "x" * 47 + '..."')
        self.assertEqual(format_field_value(["a", "b"]), "[2 items]")
        self.assertEqual(format_field_value({"a": 1}), "{1 keys}")
        self.assertEqual(format_field_value(12.5), "12.5")
        self.assertEqual(format_field_value(True), "true")

    def test_durations(self):
        self.assertEqual(format_duration(123), "123ms")
        self.assertEqual(format_duration(1500), "1.5s")


class TestScrapeLogger(unittest.TestCase):
    def test_levels_and_labels(self):
        log, stream = make_logger("levels")
        log.info("hello")
        log.warn("careful")
        log.success("done")
        log.error("broken", ValueError("bad value"))

        output = stream.getvalue()
        self.assertIn("INFO]", output)
        self.assertIn("WARN]", output)
        self.assertIn("SUCCESS]", output)
        self.assertIn("ERROR]", output)
        self.assertIn("bad value", output)

    def test_debug_is_gated(self):
        log, stream = make_logger("debug-gate")
        log.debug("hidden")
        log.html("snippet", "<div>hidden</div>")
        self.assertEqual(stream.getvalue(), "")

        log.set_debug(True)
        self.assertTrue(log.is_debug_enabled())
        log.debug("shown", {"k": "v"})
        log.html("snippet", "<p>" + "a" * 20 + "</p>", max_length=10)
        output = stream.getvalue()
        self.assertIn("shown", output)
        self.assertIn('"k": "v"', output)
        self.assertIn("[HTML: snippet]", output)
        self.assertIn("<p>aaaaaaa...", output)

    def test_field_lines(self):
        log, stream = make_logger("fields")
        log.field("title", "Smart Blender", True)
        log.field("rating", None, False)
        output = stream.getvalue()
        self.assertIn("✓", output)
        self.assertIn("✗", output)
        self.assertIn('"Smart Blender"', output)

    def test_timers(self):
        log, stream = make_logger("timers")
        log.start_timer("scrape")
        self.assertGreaterEqual(log.end_timer("scrape"), 0)
        self.assertEqual(log.end_timer("scrape"), 0)
        self.assertIn("Timer 'scrape' not found", stream.getvalue())

    def test_step_and_divider(self):
        log, stream = make_logger("steps")
        log.step(2, 5, "Navigate")
        log.divider("RESULTS")
        log.divider()
        output = stream.getvalue()
        self.assertEqual((log.current_step, log.total_steps), (2, 5))
        self.assertIn("Step [2/5]", output)
        self.assertIn("RESULTS", output)
        self.assertIn("─" * 62, output)
