import sys
import os
import enum
import secrets
import hmac
import hashlib
import logging
from dataclasses import dataclass
from typing import Optional
from tabulate import tabulate

logger = logging.getLogger(__name__)

FACES_PER_DIE = 6
MIN_DICE = 3
KEY_SIZE_BYTES = 32

# ==============================================================================
# 1. Error Handling Classes
# ==============================================================================

class ValidationError(Exception):
    """
    Custom exception for argument validation errors.
    Provides a formatted message including an example of correct usage.
    """
    _invocation_command = "python"

    @staticmethod
    def set_invocation_command(command: str):
        """Sets the command used to run the script (e.g., 'python' or 'py')."""
        ValidationError._invocation_command = command

    def __init__(self, message: str):
        self.message = message
        super().__init__(self.message)

    def __str__(self) -> str:
        script_name = sys.argv[0] if sys.argv else 'game.py'
        example = (
            f"{ValidationError._invocation_command} {script_name} "
            f"2,2,4,4,9,9 1,1,6,6,8,8 3,3,5,5,7,7"
        )
        return f"\nArgument Error: {self.message}\n\nExample usage:\n{example}\n"

ValidationError.NOT_ENOUGH_DICE = ValidationError(f"Please specify at least {MIN_DICE} dice.")
ValidationError.WRONG_FACE_COUNT = ValidationError(f"Each die must have exactly {FACES_PER_DIE} faces.")
ValidationError.NON_INTEGER_VALUE = ValidationError("All dice faces must be integer values.")


class ProtocolError(RuntimeError):
    """Raised when the commit/reveal steps are performed out of order."""


class EntropySourceError(RuntimeError):
    """Raised when the operating system's secure random source fails."""

# ==============================================================================
# 2. Data Structure for a Die
# ==============================================================================

class Die:
    def __init__(self, faces: list[int]):
        if not faces:
            raise ValueError("A die must have at least one face.")
        self.faces = tuple(faces)

    def __str__(self) -> str:
        return ",".join(map(str, self.faces))

    def __len__(self) -> int:
        return len(self.faces)

# ==============================================================================
# 3. Command-Line Argument Parser
# ==============================================================================

class DiceParser:
    @staticmethod
    def parse(args: list[str]) -> list[Die]:
        if len(args) < MIN_DICE:
            raise ValidationError.NOT_ENOUGH_DICE
        try:
            dice_list = [Die([int(f) for f in arg.split(',')]) for arg in args]
        except ValueError:
            raise ValidationError.NON_INTEGER_VALUE
        if any(len(d) != FACES_PER_DIE for d in dice_list):
            raise ValidationError.WRONG_FACE_COUNT
        return dice_list

# ==============================================================================
# 4. Cryptographic Operations Provider
# ==============================================================================

class CryptoProvider:
    """
    Source of secure randomness. Every call draws fresh bytes from the
    operating system; nothing is kept between calls.
    """

    def generate_key(self) -> bytes:
        try:
            return secrets.token_bytes(KEY_SIZE_BYTES)
        except (OSError, NotImplementedError) as exc:
            raise EntropySourceError("Secure random source is unavailable.") from exc

    def generate_secure_random(self, max_val: int) -> int:
        try:
            return secrets.randbelow(max_val)
        except (OSError, NotImplementedError) as exc:
            raise EntropySourceError("Secure random source is unavailable.") from exc

    @staticmethod
    def calculate_hmac(key: bytes, message_int: int) -> bytes:
        message_bytes = str(message_int).encode('utf-8')
        return hmac.new(key, message_bytes, hashlib.sha256).digest()

# ==============================================================================
# 5. Provably Fair Value Generation
# ==============================================================================

class CommitmentState(enum.Enum):
    COMMITTED = "committed"
    DISCLOSED = "disclosed"
    REVEALED = "revealed"


class Commitment:
    """
    A hidden value bound by HMAC-SHA256(key, str(value)).

    Only the digest may be shown before the counterparty picks its number.
    The value and key are handed out by FairValueGenerator.reveal, once.
    """

    def __init__(self, secret_value: int, secret_key: bytes, digest: bytes, range_size: int):
        self._secret_value = secret_value
        self._secret_key = secret_key
        self.digest = digest
        self.range_size = range_size
        self.state = CommitmentState.COMMITTED

    @property
    def hmac_hex(self) -> str:
        return self.digest.hex().upper()

    def disclose(self) -> str:
        """Marks the digest as shown to the counterparty and returns it."""
        if self.state is CommitmentState.COMMITTED:
            self.state = CommitmentState.DISCLOSED
        return self.hmac_hex

    def __repr__(self) -> str:
        return f"Commitment(range_size={self.range_size}, hmac={self.hmac_hex}, state={self.state.value})"


def _check_range_size(range_size: int):
    if isinstance(range_size, bool) or not isinstance(range_size, int) or range_size <= 0:
        raise ValueError(f"Range size must be a positive integer, got {range_size!r}.")


def combine_modulo(secret_value: int, counterparty_value: int, range_size: int) -> int:
    _check_range_size(range_size)
    for name, value in (("secret", secret_value), ("counterparty", counterparty_value)):
        if not 0 <= value < range_size:
            raise ValueError(f"The {name} value {value} is outside 0..{range_size - 1}.")
    return (secret_value + counterparty_value) % range_size


class FairValueGenerator:
    def __init__(self, crypto_provider: Optional[CryptoProvider] = None):
        self.crypto = crypto_provider or CryptoProvider()

    def commit(self, range_size: int) -> Commitment:
        _check_range_size(range_size)
        value = self.crypto.generate_secure_random(range_size)
        key = self.crypto.generate_key()
        digest = self.crypto.calculate_hmac(key, value)
        commitment = Commitment(value, key, digest, range_size)
        logger.debug("Committed to a value in 0..%d: %r", range_size - 1, commitment)
        return commitment

    def reveal(self, commitment: Commitment) -> tuple[int, str]:
        if commitment.state is CommitmentState.COMMITTED:
            raise ProtocolError("Cannot reveal a commitment whose HMAC was never disclosed.")
        if commitment.state is CommitmentState.REVEALED:
            raise ProtocolError("Commitment has already been revealed.")
        commitment.state = CommitmentState.REVEALED
        key_hex = commitment._secret_key.hex().upper()
        logger.debug("Revealed value %d for HMAC %s", commitment._secret_value, commitment.hmac_hex)
        return commitment._secret_value, key_hex

    def combine(self, commitment: Commitment, counterparty_value: int) -> int:
        if commitment.state is CommitmentState.COMMITTED:
            raise ProtocolError("Counterparty value taken before the HMAC was disclosed.")
        result = combine_modulo(commitment._secret_value, counterparty_value, commitment.range_size)
        logger.debug("Combined counterparty value %d into %d (mod %d)",
                     counterparty_value, result, commitment.range_size)
        return result

    @staticmethod
    def verify(hmac_hex: str, secret_value: int, key_hex: str) -> bool:
        """Recomputes HMAC-SHA256(key, str(value)) and compares it to the shown digest."""
        try:
            key = bytes.fromhex(key_hex)
            expected = bytes.fromhex(hmac_hex)
        except ValueError:
            return False
        return hmac.compare_digest(CryptoProvider.calculate_hmac(key, secret_value), expected)

# ==============================================================================
# 6. Probability Calculation Logic
# ==============================================================================

@dataclass(frozen=True)
class ProbabilityMatrix:
    win: tuple[tuple[float, ...], ...]
    tie: tuple[tuple[float, ...], ...]

    def __len__(self) -> int:
        return len(self.win)


class ProbabilityCalculator:
    @staticmethod
    def count_outcomes(die1: Die, die2: Die) -> tuple[int, int, int]:
        total_outcomes = len(die1) * len(die2)
        if total_outcomes == 0:
            raise ValueError("Cannot compare a die that has no faces.")
        wins = sum(1 for f1 in die1.faces for f2 in die2.faces if f1 > f2)
        ties = sum(1 for f1 in die1.faces for f2 in die2.faces if f1 == f2)
        return wins, ties, total_outcomes

    @staticmethod
    def calculate_win_probability(die1: Die, die2: Die) -> float:
        wins, _, total_outcomes = ProbabilityCalculator.count_outcomes(die1, die2)
        return wins / total_outcomes

    @staticmethod
    def calculate_tie_probability(die1: Die, die2: Die) -> float:
        _, ties, total_outcomes = ProbabilityCalculator.count_outcomes(die1, die2)
        return ties / total_outcomes

    @staticmethod
    def calculate_matrix(all_dice: list[Die]) -> ProbabilityMatrix:
        if not all_dice:
            raise ValueError("Probability matrix is undefined for an empty set of dice.")
        win_rows, tie_rows = [], []
        for die1 in all_dice:
            counts = [ProbabilityCalculator.count_outcomes(die1, die2) for die2 in all_dice]
            win_rows.append(tuple(wins / total for wins, _, total in counts))
            tie_rows.append(tuple(ties / total for _, ties, total in counts))
        logger.debug("Computed %dx%d probability matrix", len(all_dice), len(all_dice))
        return ProbabilityMatrix(win=tuple(win_rows), tie=tuple(tie_rows))

# ==============================================================================
# 7. Help Table Generation
# ==============================================================================

class HelpTableGenerator:
    @staticmethod
    def generate_table(all_dice: list[Die], calculator=ProbabilityCalculator) -> str:
        matrix = calculator.calculate_matrix(all_dice)
        headers = ["User dice v"] + [str(d) for d in all_dice]
        table_data = []
        for i, user_die in enumerate(all_dice):
            row = [str(user_die)]
            for j in range(len(all_dice)):
                if i == j:
                    row.append(f"- ({matrix.tie[i][j]:.4f})")
                else:
                    row.append(f"{matrix.win[i][j]:.4f}")
            table_data.append(row)

        intro = (
            "\n--- Non-Transitive Dice Game Help ---\n"
            "Every die has the same number of faces but a different distribution of values.\n"
            "The dice are non-transitive: if die A tends to beat die B and die B tends to beat die C,\n"
            "die C may still tend to beat die A. The player who rolls the higher number wins.\n"
            "\nProbability of the win for the user (rows) against the PC's die (columns).\n"
            "Diagonal cells show the probability of a tie against an identical die.\n"
        )
        return intro + tabulate(table_data, headers=headers, tablefmt="grid", disable_numparse=True)

    @staticmethod
    def fair_roll_help(range_size: int) -> str:
        return (
            "\nThis is a fair roll: you and I both contribute to the result.\n"
            "I have already selected a hidden number and shown its HMAC as proof.\n"
            f"You add your own number, and the sum modulo {range_size} selects the face.\n"
            "After your choice I reveal my number and key so you can check the HMAC."
        )

    @staticmethod
    def first_move_help() -> str:
        return (
            "\nWe decide who picks a die first.\n"
            "I have already selected a hidden bit, 0 or 1, and shown its HMAC as proof.\n"
            "Guess the bit: if your guess matches it, you make the first move.\n"
            "After your guess I reveal my bit and key so you can check the HMAC."
        )

# ==============================================================================
# 8. Console User Interface
# ==============================================================================

class GameUI:
    def display_message(self, text: str):
        print(text)

    def display_hmac(self, hmac_hex: str):
        print(f"HMAC: {hmac_hex}")

    def display_key_and_move(self, key_hex: str, move: int, name: str = "My choice"):
        print(f"{name}: {move} (KEY={key_hex})")

    def ask_yes_no(self, prompt: str) -> bool:
        return input(prompt).strip().lower() == 'y'

    def get_user_choice(self, prompt: str, options: list[str], allow_help: bool = True) -> str:
        while True:
            print(f"\n{prompt}")
            for i, option in enumerate(options):
                print(f" {i} - {option}")

            print("\n X - Exit")
            if allow_help:
                print(" ? - Help")

            choice = input("Your choice: ").strip().lower()

            if choice == 'x':
                print("Exiting game. Goodbye!")
                sys.exit(0)
            if choice == '?' and allow_help:
                return '?'

            if choice.isdecimal():
                choice_int = int(choice)
                if 0 <= choice_int < len(options):
                    return str(choice_int)

            print("Invalid choice. Please enter a valid number, '?', or 'X'.")

# ==============================================================================
# 9. Provably Fair Interaction Protocol
# ==============================================================================

class FairInteraction:
    def __init__(self, generator: FairValueGenerator, ui: GameUI):
        self.generator = generator
        self.ui = ui

    def _exchange(self, prompt: str, options: list[str], help_text: str) -> int:
        while True:
            choice = self.ui.get_user_choice(prompt, options, allow_help=True)
            if choice == '?':
                self.ui.display_message(help_text)
                continue
            return int(choice)

    def determine_first_player(self) -> bool:
        self.ui.display_message("\nLet's determine who makes the first move.")
        commitment = self.generator.commit(2)
        hmac_hex = commitment.disclose()
        self.ui.display_message(f"I have chosen a random value in range 0..1 (HMAC={hmac_hex}).")

        user_bit = self._exchange(
            "Try to guess my choice.", ["0", "1"], HelpTableGenerator.first_move_help()
        )

        computer_bit, key_hex = self.generator.reveal(commitment)
        self.ui.display_key_and_move(key_hex, computer_bit)
        return user_bit == computer_bit

    def get_fair_roll_index(self, max_val: int, prompt: str) -> int:
        commitment = self.generator.commit(max_val)
        self.ui.display_message(f"I have chosen a random value in range 0..{max_val-1}.")
        self.ui.display_hmac(commitment.disclose())

        user_move = self._exchange(
            prompt, [str(i) for i in range(max_val)], HelpTableGenerator.fair_roll_help(max_val)
        )

        result = self.generator.combine(commitment, user_move)
        computer_move, key_hex = self.generator.reveal(commitment)
        self.ui.display_key_and_move(key_hex, computer_move, name="My number")
        self.ui.display_message(f"Fair random number result: ({computer_move} + {user_move}) mod {max_val} = {result}")
        return result

# ==============================================================================
# 10. Main Game Controller
# ==============================================================================

class GameController:
    def __init__(self, dice: list[Die], ui: GameUI, interaction: FairInteraction,
                 help_gen: HelpTableGenerator, crypto: CryptoProvider):
        self.all_dice = dice
        self.ui = ui
        self.interaction = interaction
        self.help_gen = help_gen
        self.crypto = crypto

    def run(self):
        self.ui.display_message("--- Welcome to the Non-Transitive Dice Game! ---")
        while True:
            self._play_round()
            if not self.ui.ask_yes_no("\nPlay another round? (y/n): "):
                self.ui.display_message("Thanks for playing!")
                break

    def _play_round(self):
        user_goes_first = self.interaction.determine_first_player()

        player_die, computer_die = self._select_dice(user_goes_first)

        self.ui.display_message(f"\nYour die: [{player_die}]")
        self.ui.display_message(f"My die:   [{computer_die}]")

        self.ui.display_message("\n--- Time to roll! ---")

        self.ui.display_message("\nIt is my time to roll.")
        computer_roll_value = self._roll(computer_die)
        self.ui.display_message(f"Result of my roll is {computer_roll_value}.")

        self.ui.display_message("\nIt is your time to roll.")
        player_roll_value = self._roll(player_die)
        self.ui.display_message(f"Result of your roll is {player_roll_value}.")

        self.ui.display_message("\n--- Results ---")
        self.ui.display_message(f"You rolled {player_roll_value}, I rolled {computer_roll_value}.")
        self.ui.display_message(self.describe_outcome(player_roll_value, computer_roll_value))

    def _roll(self, die: Die) -> int:
        num_faces = len(die)
        index = self.interaction.get_fair_roll_index(
            num_faces, f"Add your number modulo {num_faces}."
        )
        return die.faces[index]

    @staticmethod
    def describe_outcome(player_roll_value: int, computer_roll_value: int) -> str:
        if player_roll_value > computer_roll_value:
            return f"You won! ({player_roll_value} > {computer_roll_value})"
        if computer_roll_value > player_roll_value:
            return f"I won! ({computer_roll_value} > {player_roll_value})"
        return "It's a draw!"

    def _select_dice(self, user_goes_first: bool):
        available_dice = list(self.all_dice)
        if user_goes_first:
            self.ui.display_message("You make the first move and choose the dice.")
            player_die = self._get_player_die_choice(available_dice)
            available_dice.remove(player_die)
            computer_die = self._pick_computer_die(available_dice)
            self.ui.display_message(f"I choose dice [{computer_die}].")
        else:
            self.ui.display_message("I make the first move and choose the dice.")
            computer_die = self._pick_computer_die(available_dice)
            available_dice.remove(computer_die)
            self.ui.display_message(f"I choose dice [{computer_die}].")
            player_die = self._get_player_die_choice(available_dice)
        return player_die, computer_die

    def _pick_computer_die(self, available_dice: list[Die]) -> Die:
        return available_dice[self.crypto.generate_secure_random(len(available_dice))]

    def _get_player_die_choice(self, available_dice: list[Die]) -> Die:
        while True:
            options = [str(d) for d in available_dice]
            choice_str = self.ui.get_user_choice("Select your dice:", options, allow_help=True)
            if choice_str == '?':
                table = self.help_gen.generate_table(self.all_dice, ProbabilityCalculator)
                self.ui.display_message(table)
                continue
            return available_dice[int(choice_str)]

# ==============================================================================
# 11. Main Execution Block
# ==============================================================================

def configure_logging():
    level_name = os.environ.get("DICE_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(level_name)
    if not isinstance(level, int):
        logging.basicConfig(level=logging.WARNING)
        logger.warning("Unknown DICE_LOG_LEVEL %r, using WARNING.", level_name)
        return
    logging.basicConfig(level=level)


def main():
    configure_logging()
    try:
        # Dynamically determine the command used to invoke the script
        if 'py.exe' in sys.executable.lower():
            ValidationError.set_invocation_command('py')
        else:
            ValidationError.set_invocation_command('python')

        args = sys.argv[1:]
        dice = DiceParser.parse(args)

        ui = GameUI()
        crypto = CryptoProvider()
        help_gen = HelpTableGenerator()
        interaction = FairInteraction(FairValueGenerator(crypto), ui)

        controller = GameController(dice, ui, interaction, help_gen, crypto)
        controller.run()

    except ValidationError as e:
        print(e, file=sys.stderr)
        sys.exit(1)
    except EntropySourceError as e:
        logger.error("Aborting game: %s", e)
        print(f"\nFatal error: {e}", file=sys.stderr)
        sys.exit(2)
    except (KeyboardInterrupt, EOFError):
        print("\nGame interrupted. Goodbye!")
        sys.exit(0)

if __name__ == "__main__":
    main()
