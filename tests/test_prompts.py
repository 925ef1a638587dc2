import pytest

from neartx.prompts import FieldResolutionFailed, Prompter


class ScriptedInput:
    def __init__(self, *answers: str) -> None:
        self.answers = list(answers)
        self.prompts: list[str] = []

    def __call__(self, prompt: str) -> str:
        self.prompts.append(prompt)
        return self.answers.pop(0)


def test_blank_answer_takes_default():
    prompter = Prompter(ScriptedInput(""), output_func=lambda _msg: None)
    assert prompter.text("args", "Enter args", default="{}") == "{}"


def test_invalid_answers_are_reprompted():
    output: list[str] = []
    answers = ScriptedInput("abc", "12")
    prompter = Prompter(answers, output_func=output.append)

    assert prompter.ask("nonce", "Enter nonce", int) == 12
    assert len(answers.prompts) == 2
    assert any("Invalid value" in line for line in output)


def test_validation_message_is_shown():
    output: list[str] = []
    prompter = Prompter(ScriptedInput("9", "3"), output_func=output.append)

    value = prompter.ask("n", "Number", int, validate=lambda v: "too big" if v > 5 else None)

    assert value == 3
    assert "too big" in output


def test_attempts_are_bounded():
    prompter = Prompter(ScriptedInput("x", "y"), output_func=lambda _msg: None, max_attempts=2)

    with pytest.raises(FieldResolutionFailed) as excinfo:
        prompter.ask("nonce", "Enter nonce", int)

    assert excinfo.value.field == "nonce"
    assert "after 2 attempts" in str(excinfo.value)


def test_disabled_prompter_never_reads_input():
    def explode(_prompt: str) -> str:
        raise AssertionError("prompted")

    prompter = Prompter(explode, interactive=False)

    with pytest.raises(FieldResolutionFailed) as excinfo:
        prompter.text("method_name", "Enter a method name")
    assert excinfo.value.field == "method_name"


@pytest.mark.parametrize("answer, expected", [("2", "testnet"), ("custom", "custom"), ("MAINNET", "mainnet")])
def test_choice_accepts_number_or_key(answer, expected):
    output: list[str] = []
    prompter = Prompter(ScriptedInput(answer), output_func=output.append)

    choices = {"mainnet": "main", "testnet": "test", "custom": "own rpc"}
    assert prompter.choice("network", "Select the network", choices) == expected
    assert output[0] == "Select the network"
    assert output[2] == "  [2] testnet - test"
