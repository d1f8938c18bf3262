"""Classify command implementation.

Looks up process names in the built-in safety knowledge base.
"""

from typing import Annotated

import typer

from ejectctl.cli.display import create_classification_table
from ejectctl.core.safety import ProcessClassifier
from ejectctl.utils.formatting import console

app = typer.Typer(
    help="Show how safe it is to terminate a process.",
    invoke_without_command=True,
)


@app.callback(invoke_without_command=True)
def classify(
    names: Annotated[
        list[str],
        typer.Argument(help="Process names to look up."),
    ],
) -> None:
    """Show the safety tier of one or more process names.

    Examples:
        ejectctl classify mdworker_shared
        ejectctl classify Finder rsync
    """
    classifier = ProcessClassifier()
    results = [(name, *classifier.classify(name)) for name in names]
    console.print(create_classification_table(results))
