import io
import logging
import os
import unittest
from contextlib import redirect_stderr, redirect_stdout
from unittest import mock

import game

DICE_ARGS = ["game.py", "2,2,4,4,9,9", "1,1,6,6,8,8", "3,3,5,5,7,7"]


class TestMainExitCodes(unittest.TestCase):
    def setUp(self):
        patcher = mock.patch("game.logging.basicConfig")
        patcher.start()
        self.addCleanup(patcher.stop)

    def _run_main(self, argv, **patches):
        out, err = io.StringIO(), io.StringIO()
        with mock.patch("sys.argv", argv), redirect_stdout(out), redirect_stderr(err):
            with self.assertRaises(SystemExit) as ctx:
                game.main()
        return ctx.exception.code, out.getvalue(), err.getvalue()

    def test_argument_error_exits_with_status_1(self):
        code, _, err = self._run_main(["game.py", "1,2,3,4,5,6"])
        self.assertEqual(code, 1)
        self.assertIn("Argument Error: Please specify at least 3 dice.", err)

    def test_entropy_failure_exits_with_status_2(self):
        with mock.patch("game.secrets.randbelow", side_effect=OSError("no entropy")), \
                mock.patch("builtins.input") as fake_input:
            code, _, err = self._run_main(DICE_ARGS)
        self.assertEqual(code, 2)
        self.assertIn("Fatal error: Secure random source is unavailable.", err)
        fake_input.assert_not_called()

    def test_interrupt_and_end_of_input_exit_with_status_0(self):
        for interruption in (KeyboardInterrupt, EOFError):
            with mock.patch("builtins.input", side_effect=interruption):
                code, out, _ = self._run_main(DICE_ARGS)
            self.assertEqual(code, 0)
            self.assertIn("Game interrupted. Goodbye!", out)


class TestConfigureLogging(unittest.TestCase):
    def test_known_level_name(self):
        with mock.patch.dict(os.environ, {"DICE_LOG_LEVEL": "debug"}), \
                mock.patch("game.logging.basicConfig") as basic_config:
            game.configure_logging()
        basic_config.assert_called_once_with(level=logging.DEBUG)

    def test_unknown_level_name_falls_back_to_warning(self):
        with mock.patch.dict(os.environ, {"DICE_LOG_LEVEL": "foo"}), \
                mock.patch("game.logging.basicConfig") as basic_config, \
                self.assertLogs("game", level="WARNING") as logs:
            game.configure_logging()
        basic_config.assert_called_once_with(level=logging.WARNING)
        self.assertIn("Unknown DICE_LOG_LEVEL 'FOO'", logs.output[0])


if __name__ == '__main__':
    unittest.main()
