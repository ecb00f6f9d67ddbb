from __future__ import annotations

import threading
from dataclasses import asdict

import inject
import typer

from neural_stand.adapters.left.inject_config import configure_injections
from neural_stand.adapters.right.data_loaders.synthetic_figures import SyntheticFiguresDatasetProvider
from neural_stand.adapters.right.metrics_jsonl import CompositeMetricsSink, JsonlFileMetricsSink
from neural_stand.adapters.right.metrics_plotting import plot_metrics_from_logs
from neural_stand.adapters.right.metrics_stdout import StdoutMetricsSink
from neural_stand.core.domain.commands.train import TrainCommand
from neural_stand.core.domain.entities.model import EngineConfig, Topology
from neural_stand.core.domain.errors.training import ConfigurationError
from neural_stand.core.domain.network.engine import NetworkEngine
from neural_stand.core.use_cases.background_training import BackgroundTrainingJob, JobState
from neural_stand.core.use_cases.train_classifier import TrainClassifierUseCase, TrainResult

app = typer.Typer(add_completion=False, no_args_is_help=True)


def parse_structure(text: str) -> tuple[int, ...]:
    """Parse the stand's "200;64;4" network structure notation."""

    try:
        return tuple(int(part) for part in text.replace(",", ";").split(";") if part.strip())
    except ValueError as e:
        raise typer.BadParameter(f"structure must look like 200;64;4 (got {text!r})") from e


class _ProgressBox:
    """Latest progress report, written by the training thread and read by the CLI loop."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._value: tuple[float, float, float] | None = None

    def __call__(self, progress: float, error: float, elapsed: float) -> None:
        with self._lock:
            self._value = (progress, error, elapsed)

    def take(self) -> tuple[float, float, float] | None:
        with self._lock:
            value, self._value = self._value, None
            return value


@app.command()
def train(
    classes: int = typer.Option(4, min=1, max=4, help="Number of figure classes (triangle, rectangle, circle, sinusoid)"),
    train_size: int = typer.Option(200, min=1, help="Generated training figures (split evenly between classes)"),
    test_size: int = typer.Option(80, min=0, help="Generated test figures"),
    feature_kind: str = typer.Option("grid", help="Feature layout: grid | projection"),
    epochs: int = typer.Option(100, min=1),
    accuracy: float = typer.Option(95.0, min=0.0, max=100.0, help="Target accuracy in %; acceptable error is (100 - accuracy) / 100"),
    hidden: list[int] = typer.Option([64], help="Repeatable hidden sizes: --hidden 64 --hidden 32"),
    activation: str = typer.Option("sigmoid", help="Hidden activation: sigmoid | leaky_relu"),
    update_convention: str = typer.Option("subtract", help="Weight update sign: subtract | add"),
    lr: float = typer.Option(0.1),
    momentum: float = typer.Option(0.9),
    weight_decay: float = typer.Option(1e-5),
    batch_size: int = typer.Option(16, min=1),
    patience: int = typer.Option(15, min=1, help="Stop after this many epochs without validation improvement"),
    seed: int = typer.Option(0),
    parallel: bool = typer.Option(False, "--parallel/--serial", help="Run per-sample passes of a batch on worker threads"),
    log_every: int = typer.Option(5, min=1, help="Print every Nth epoch to stdout"),
    log_path: str = typer.Option(
        "",
        help="If set, append metrics/events as JSONL to this path (e.g. logs/train.jsonl)",
    ),
) -> None:
    """Train a network on generated figures, off the main thread."""

    feature_kind = feature_kind.lower().strip()
    if feature_kind not in {"grid", "projection"}:
        raise typer.BadParameter("feature_kind must be one of: grid, projection")

    try:
        dataset = SyntheticFiguresDatasetProvider(
            num_classes=classes,
            train_size=train_size,
            test_size=test_size,
            seed=seed,
            feature_kind=feature_kind,  # type: ignore[arg-type]
        )
        cmd = TrainCommand(
            epochs=epochs,
            seed=seed,
            acceptable_error=(100.0 - accuracy) / 100.0,
            parallel=parallel,
            hidden_sizes=tuple(hidden),
            activation=activation,  # type: ignore[arg-type]
            update_convention=update_convention,  # type: ignore[arg-type]
            learning_rate=lr,
            momentum=momentum,
            weight_decay=weight_decay,
            batch_size=batch_size,
            early_stopping_patience=patience,
        )
        cmd.engine_config()
        Topology.build(dataset.info.feature_length, cmd.hidden_sizes, dataset.info.num_classes)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e

    stdout_metrics = StdoutMetricsSink(every=log_every)
    metrics = (
        CompositeMetricsSink(stdout_metrics, JsonlFileMetricsSink(path=log_path))
        if log_path
        else stdout_metrics
    )

    configure_injections(dataset_provider=dataset, metrics_sink=metrics)
    use_case = inject.instance(TrainClassifierUseCase)

    progress = _ProgressBox()
    job: BackgroundTrainingJob[TrainResult] = BackgroundTrainingJob(
        lambda cancel: use_case.run(cmd, progress=progress, cancel_event=cancel),
        stopped_by_cancel=lambda r: r.cancelled,
    )
    job.start()
    try:
        while job.wait(timeout=0.5) is JobState.RUNNING:
            _echo_progress(progress)
    except KeyboardInterrupt:
        typer.echo("Cancelling after the current batch...")
        job.cancel()
        job.wait()
    _echo_progress(progress)

    if job.state is JobState.FAILED:
        typer.echo(f"Training failed: {job.error}", err=True)
        raise typer.Exit(code=1)

    result = job.result
    if result is None:
        raise typer.Exit(code=1)

    typer.echo("Training complete" if job.state is JobState.COMPLETED else "Training cancelled")
    typer.echo(f"Best validation error: {result.best_error:.6f}")
    if result.summary is not None:
        typer.echo(f"Stop reason: {result.summary.stop_reason.value} after {result.summary.epochs_run} epochs")
        typer.echo(f"Accuracy on the whole training set: {result.summary.final_accuracy:.2%}")
    if result.test_accuracy is not None:
        typer.echo(f"Test accuracy: {result.test_accuracy:.2%}")
    if result.test_report is not None:
        for index, row in enumerate(result.test_report.confusion):
            total = sum(row)
            hits = row[index]
            typer.echo(f"  {dataset.info.class_name(index):>10}: {hits}/{total} recognized")
    typer.echo(f"Train command: {asdict(cmd)}")


def _echo_progress(progress: _ProgressBox) -> None:
    value = progress.take()
    if value is not None:
        fraction, error, elapsed = value
        typer.echo(f"progress {fraction:6.1%}  error {error:.6f}  elapsed {elapsed:7.2f}s")


@app.command()
def info(
    structure: str = typer.Option("200;64;4", help="Layer widths separated by ';'"),
    activation: str = typer.Option("sigmoid", help="Hidden activation: sigmoid | leaky_relu"),
    lr: float = typer.Option(0.1),
    momentum: float = typer.Option(0.9),
    weight_decay: float = typer.Option(1e-5),
) -> None:
    """Describe a freshly initialized network."""

    try:
        engine = NetworkEngine(
            Topology(layers=parse_structure(structure)),
            config=EngineConfig(
                activation=activation,  # type: ignore[arg-type]
                learning_rate=lr,
                momentum=momentum,
                weight_decay=weight_decay,
            ),
            seed=0,
        )
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e
    typer.echo(engine.describe())


@app.command(name="plot-metrics")
def plot_metrics(
    log_path: list[str] = typer.Option(..., help="Repeatable JSONL log path: --log-path a.jsonl --log-path b.jsonl"),
    out: str = typer.Option("", help="Where to save the figure (PNG); required unless --show"),
    show: bool = typer.Option(False, "--show/--no-show"),
    x_axis: str = typer.Option("epoch", help="epoch | step"),
    metric: list[str] = typer.Option([], help="Repeatable metric names; default picks losses, accuracies and lr"),
    group_by: str = typer.Option("suffix", help="suffix | none"),
    title: str = typer.Option(""),
) -> None:
    """Plot training curves from JSONL metric logs."""

    try:
        saved = plot_metrics_from_logs(
            log_paths=list(log_path),
            out_path=out or None,
            show=show,
            x_axis=x_axis,
            metrics=list(metric) or None,
            group_by=group_by,
            title=title or None,
        )
    except ValueError as e:
        raise typer.BadParameter(str(e)) from e
    if saved is not None:
        typer.echo(f"Wrote plot to: {saved}")


if __name__ == "__main__":
    app()
