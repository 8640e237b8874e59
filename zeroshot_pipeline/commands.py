"""Public Fire CLI entrypoint."""

from __future__ import annotations

from typing import Any

import fire
from hydra import compose, initialize_config_dir
from omegaconf import OmegaConf

from zeroshot_pipeline.data.download import ensure_data
from zeroshot_pipeline.production.infer import classify_table, classify_text, pivot_table
from zeroshot_pipeline.utils.logging import setup_logging
from zeroshot_pipeline.utils.paths import config_dir


def compose_config(overrides: list[str] | None = None):
    """Compose hydra config using config directory."""
    config_directory = str(config_dir().resolve())
    with initialize_config_dir(config_dir=config_directory, version_base=None):
        return compose(config_name="config", overrides=overrides or [])


def _configured(overrides: tuple[str, ...]):
    cfg = compose_config(list(overrides))
    setup_logging(cfg.logging.level)
    return cfg


class ZeroShotCommands:
    """Command collection exposed through python-fire."""

    def print_config(self, *overrides: str) -> str:
        cfg = compose_config(list(overrides))
        rendered = OmegaConf.to_yaml(cfg, resolve=True)
        print(rendered)
        return rendered

    def ensure_data(self, *overrides: str) -> str:
        cfg = _configured(overrides)
        path = ensure_data(cfg)
        print(str(path))
        return str(path)

    def classify_text(self, text: str, *overrides: str) -> dict[str, Any]:
        cfg = _configured(overrides)
        prediction = classify_text(cfg, text=text)
        print(prediction)
        return prediction

    def classify_table(
        self,
        input_path: str | None = None,
        output_path: str | None = None,
        text_column: str | None = None,
        id_column: str | None = None,
        *overrides: str,
    ) -> str:
        cfg = _configured(overrides)
        if input_path is None:
            ensure_data(cfg)
        output = classify_table(
            cfg,
            input_path=input_path,
            output_path=output_path,
            text_column=text_column,
            id_column=id_column,
        )
        print(output)
        return output

    def pivot(self, input_path: str, output_path: str, *overrides: str) -> str:
        cfg = _configured(overrides)
        output = pivot_table(cfg, input_path=input_path, output_path=output_path)
        print(output)
        return output

    def api_instructions(self) -> None:
        print(
            "poetry run uvicorn zeroshot_pipeline.production.api:create_app "
            "--factory --host 0.0.0.0 --port 8000"
        )
        print("curl -X GET http://127.0.0.1:8000/health")
        print(
            "curl -X POST http://127.0.0.1:8000/classify "
            "-H 'Content-Type: application/json' "
            '-d \'{"text": "Many American jobs are shipped to Chinese factories."}\''
        )


def main() -> None:
    """Main Fire entrypoint."""
    fire.Fire(ZeroShotCommands)


if __name__ == "__main__":
    main()
