from localactions.workflows.placeholders import ExtractedName, PatternKind, extract

WORKFLOW = """\
on:
  workflow_dispatch:
    inputs:
      target:
        required: true
jobs:
  deploy:
    if: ${{ vars.REGION == 'us-east-1' && github.event.inputs.dry_run == "false" }}
    runs-on: [self-hosted, linux]
    env:
      TOKEN: ${{ secrets.API_KEY }}
      OTHER: ${{ secrets.API_KEY }}
      PLAIN: secrets.NOT_IN_EXPRESSION
    steps:
      - run: echo ${{ inputs.target }} ${{ vars.STAGE }}
  test:
    runs-on:
      - ubuntu-latest
      - ${{ matrix.os }}
    steps:
      - run: echo ${{ env.secrets.NESTED }}
  lint:
    runs-on: "macos-14"  # pinned
"""


def test_secret_names_are_deduplicated_in_first_occurrence_order() -> None:
    assert extract(WORKFLOW, PatternKind.SECRETS) == [ExtractedName("API_KEY")]


def test_variable_comparison_literal_is_captured() -> None:
    assert extract(WORKFLOW, PatternKind.VARIABLES) == [
        ExtractedName("REGION", "'us-east-1'"),
        ExtractedName("STAGE"),
    ]


def test_inputs_accept_event_prefix() -> None:
    assert extract(WORKFLOW, PatternKind.INPUTS) == [
        ExtractedName("dry_run", '"false"'),
        ExtractedName("target"),
    ]


def test_runner_labels_cover_scalar_and_list_forms() -> None:
    names = [item.name for item in extract(WORKFLOW, PatternKind.RUNNERS)]

    assert names == ["self-hosted", "linux", "ubuntu-latest", "macos-14"]


def test_no_match_is_an_empty_list() -> None:
    assert extract("jobs: {}\n", PatternKind.SECRETS) == []
    assert extract("", PatternKind.RUNNERS) == []
    assert extract(None, PatternKind.VARIABLES) == []
