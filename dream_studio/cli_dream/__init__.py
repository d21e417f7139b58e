"""
Unified CLI Interface for dream-studio

PhotoMaker 画像生成ジョブの実行・キャンセル用CLI
"""

from typing import Optional

import typer
from rich.console import Console

from dream_studio.shared.utils.logger_config import setup_logger

console = Console()

app = typer.Typer(
    name="dream",
    help="🎨 PhotoMaker 画像生成ツール",
    rich_markup_mode="rich",
    add_completion=False,
)


def configure_logging(verbose: bool) -> None:
    """
    グローバルログ設定

    Args:
        verbose: True=DEBUG以上、False=LOG_LEVEL 環境変数（デフォルトWARNING）
    """
    setup_logger(verbose=verbose)


@app.callback()
def main(
    ctx: typer.Context,
    verbose: bool = typer.Option(False, "--verbose", "-v", help="詳細ログ出力"),
) -> None:
    """🎨 PhotoMaker 画像生成ツール"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    configure_logging(verbose)


@app.command(name="generate")
def generate_command(
    prompt: str = typer.Argument(..., help="プロンプト（トリガーワード img を含める）"),
    image_url: str = typer.Option(..., "--image-url", "-i", help="入力画像URL"),
    output_dir: str = typer.Option("outputs", "--output-dir", "-o", help="画像の保存先"),
    num_outputs: int = typer.Option(1, "--num-outputs", "-n", min=1, max=4, help="生成枚数"),
    style: str = typer.Option("Photographic (Default)", "--style", help="スタイル名"),
    steps: int = typer.Option(50, "--steps", min=1, max=100, help="サンプリングステップ数"),
    seed: Optional[int] = typer.Option(None, "--seed", help="乱数シード"),
):
    """
    画像生成ジョブを実行

    進捗バーを表示しながらジョブを待ち、生成画像を保存します。
    Ctrl-C でジョブをキャンセルします。

    Examples:
        dream generate "a photo of a man img" -i https://example.com/face.jpg
        dream -v generate "a woman img in space" -i https://example.com/face.jpg -n 2
    """
    from dream_studio.cli_dream.generate import run_generate

    run_generate(
        prompt=prompt,
        image_url=image_url,
        output_dir=output_dir,
        num_outputs=num_outputs,
        style=style,
        steps=steps,
        seed=seed,
    )


@app.command(name="cancel")
def cancel_command(
    prediction_id: str = typer.Argument(..., help="キャンセルする予測ID"),
):
    """
    実行中の予測をキャンセル

    Examples:
        dream cancel ufawqhfynnddngldkgtslldrkq
    """
    from dream_studio.cli_dream.generate import run_cancel

    run_cancel(prediction_id)


if __name__ == "__main__":
    app()
