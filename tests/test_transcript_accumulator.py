import unittest

from voicedoc.transcript import (
    EndEvent,
    ErrorEvent,
    RecognitionResult,
    ResultEvent,
    StartEvent,
    TranscriptAccumulator,
    TranscriptState,
    consume_results,
)


def _batch(*items):
    return ResultEvent(results=tuple(RecognitionResult(text=t, is_final=f) for t, f in items))


class _Clock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


class TestConsumeResults(unittest.TestCase):
    def test_redelivered_finals_are_counted_once(self):
        state = TranscriptState()
        state = consume_results(state, [RecognitionResult("안녕하세요", True)])
        state = consume_results(
            state,
            [RecognitionResult("안녕하세요", True), RecognitionResult("오늘", False)],
        )
        state = consume_results(
            state,
            [RecognitionResult("안녕하세요", True), RecognitionResult("오늘 회의는", True)],
        )
        self.assertEqual(state.finalized_text, "안녕하세요 오늘 회의는")
        self.assertEqual(state.last_consumed_result_index, 2)
        self.assertEqual(state.display_text, "안녕하세요 오늘 회의는")

    def test_interim_is_shown_but_not_stored(self):
        state = consume_results(
            TranscriptState(),
            [RecognitionResult("first", True), RecognitionResult("sec", False)],
        )
        self.assertEqual(state.finalized_text, "first")
        self.assertEqual(state.display_text, "first sec")

        state = consume_results(
            state,
            [RecognitionResult("first", True), RecognitionResult("second try", False)],
        )
        self.assertEqual(state.finalized_text, "first")
        self.assertEqual(state.display_text, "first second try")
        self.assertEqual(state.display_text.count("sec"), 1)

    def test_interim_only_batch(self):
        state = consume_results(TranscriptState(), [RecognitionResult("  hello  ", False)])
        self.assertEqual(state.finalized_text, "")
        self.assertEqual(state.last_consumed_result_index, 0)
        self.assertEqual(state.display_text, "hello")

    def test_cursor_never_moves_backwards_on_shorter_batch(self):
        state = consume_results(
            TranscriptState(),
            [RecognitionResult("a b", True), RecognitionResult("c d", True)],
        )
        state = consume_results(state, [RecognitionResult("a b", True)])
        self.assertEqual(state.last_consumed_result_index, 2)
        self.assertEqual(state.finalized_text, "a b c d")

    def test_final_after_interim_waits_for_the_interim(self):
        state = consume_results(
            TranscriptState(),
            [RecognitionResult("A", True), RecognitionResult("B", False), RecognitionResult("C", True)],
        )
        self.assertEqual(state.finalized_text, "A")
        self.assertEqual(state.last_consumed_result_index, 1)
        self.assertEqual(state.display_text, "A B C")

        state = consume_results(
            state,
            [RecognitionResult("A", True), RecognitionResult("B", True), RecognitionResult("C", True)],
        )
        self.assertEqual(state.finalized_text, "A B C")
        self.assertEqual(state.last_consumed_result_index, 3)

    def test_same_input_gives_same_state(self):
        batch = [RecognitionResult("x y", True), RecognitionResult("z", False)]
        self.assertEqual(consume_results(TranscriptState(), batch), consume_results(TranscriptState(), batch))


class TestTranscriptAccumulator(unittest.TestCase):
    def setUp(self):
        self.clock = _Clock()
        self.published = []
        self.errors = []
        self.acc = TranscriptAccumulator(
            on_transcript=self.published.append,
            on_error=self.errors.append,
            clock=self.clock,
        )

    def test_growing_batches_accumulate_every_final_exactly_once(self):
        finals = ["회의를", "시작하겠습니다", "첫 번째 안건은", "예산입니다"]
        self.acc.dispatch(StartEvent())
        batch = []
        for text in finals:
            self.acc.dispatch(_batch(*batch, (text[:1], False)))
            batch.append((text, True))
            self.acc.dispatch(_batch(*batch))
            self.acc.dispatch(_batch(*batch))

        self.assertEqual(self.acc.state.finalized_text, " ".join(finals))
        for text in finals:
            self.assertEqual(self.acc.state.finalized_text.count(text), 1)

    def test_display_never_contains_final_before_it_was_final(self):
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(_batch(("alpha", False)))
        self.assertEqual(self.acc.state.finalized_text, "")
        self.assertNotIn("beta", self.published[-1])
        self.acc.dispatch(_batch(("alpha", True), ("beta", False)))
        self.assertEqual(self.acc.state.finalized_text, "alpha")
        self.assertEqual(self.published[-1], "alpha beta")

    def test_start_resets_cursor_and_finalized_text(self):
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(_batch(("old words", True), ("more", True)))
        self.acc.dispatch(EndEvent())

        self.clock.now += 5
        self.acc.dispatch(StartEvent())
        self.assertEqual(self.acc.state.finalized_text, "")
        self.assertEqual(self.acc.state.last_consumed_result_index, 0)

        # A fresh recognizer batch starts at index 0 again.
        self.acc.dispatch(_batch(("new words", True)))
        self.assertEqual(self.acc.state.finalized_text, "new words")

    def test_history_tracks_sessions_and_freezes_after_end(self):
        self.acc.dispatch(StartEvent())
        first_id = self.acc.active_session_id
        self.acc.dispatch(_batch(("first session", True), ("tail", False)))
        self.assertEqual(self.acc.history[0].text, "first session tail")
        self.acc.dispatch(EndEvent())

        self.assertFalse(self.acc.is_listening)
        self.assertIsNotNone(self.acc.history[0].ended_at)
        self.assertFalse(self.acc.dispatch(_batch(("late", True))))
        self.assertEqual(self.acc.history[0].text, "first session tail")

        self.acc.dispatch(StartEvent())
        self.acc.dispatch(_batch(("second", True)))
        history = self.acc.history
        self.assertEqual(len(history), 2)
        self.assertEqual(history[0].id, first_id)
        self.assertEqual(history[0].text, "first session tail")
        self.assertEqual(history[1].text, "second")

    def test_session_ids_strictly_increase_within_same_millisecond(self):
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(EndEvent())
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(EndEvent())
        ids = [s.id for s in self.acc.history]
        self.assertEqual(ids[0], int(self.clock.now * 1000))
        self.assertGreater(ids[1], ids[0])

    def test_start_while_listening_is_ignored(self):
        self.assertTrue(self.acc.dispatch(StartEvent()))
        self.acc.dispatch(_batch(("keep me", True)))
        self.assertFalse(self.acc.dispatch(StartEvent()))
        self.assertEqual(len(self.acc.history), 1)
        self.assertEqual(self.acc.state.finalized_text, "keep me")

    def test_error_preserves_text_and_stops_further_results(self):
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(_batch(("saved", True)))
        self.acc.dispatch(ErrorEvent(reason="network", message="network down"))

        self.assertEqual(self.errors, ["network down"])
        self.assertEqual(self.acc.error_message, "network down")
        self.assertEqual(self.acc.state.finalized_text, "saved")
        self.assertFalse(self.acc.dispatch(_batch(("saved", True), ("ignored", True))))
        self.assertEqual(self.acc.state.finalized_text, "saved")

        self.acc.dispatch(EndEvent())
        self.assertFalse(self.acc.is_listening)
        self.assertEqual(self.acc.history[0].text, "saved")

    def test_results_before_start_are_ignored(self):
        self.assertFalse(self.acc.dispatch(_batch(("orphan", True))))
        self.assertEqual(self.acc.history, [])
        self.assertEqual(self.published, [])

    def test_history_returns_copies(self):
        self.acc.dispatch(StartEvent())
        self.acc.dispatch(_batch(("x", True)))
        snapshot = self.acc.history
        snapshot[0].text = "tampered"
        self.assertEqual(self.acc.history[0].text, "x")


if __name__ == "__main__":
    unittest.main()
