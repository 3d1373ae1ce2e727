"""Workspace Vectors 启动脚本

加载配置并启动 FastAPI 服务器。
"""
import argparse
import sys
from pathlib import Path

# 添加项目根目录到路径
sys.path.insert(0, str(Path(__file__).parent))

import uvicorn


class Colors:
    """终端颜色"""
    OKBLUE = '\033[94m'
    OKCYAN = '\033[96m'
    OKGREEN = '\033[92m'
    FAIL = '\033[91m'
    ENDC = '\033[0m'
    BOLD = '\033[1m'
    GRAY = '\033[90m'


def c(color: str, text: str) -> str:
    if not sys.stdout.isatty():
        return text
    return f"{color}{text}{Colors.ENDC}"


def print_config_info(settings, config_path: str):
    """打印配置信息"""
    print()
    print(c(Colors.OKGREEN, f"✓ 配置加载成功 ({config_path})"))
    print()
    print(c(Colors.BOLD, "  向量存储:"))
    print(c(Colors.GRAY, f"    私有目录: {c(Colors.OKBLUE, settings.vector_store.private_dir)}"))
    for name, collection in settings.vector_store.collections.items():
        model = collection.model or settings.embedding.model or "default"
        print(c(Colors.GRAY, f"    · {c(Colors.OKCYAN, name)}: {collection.table} ({model})"))
    print()
    print(c(Colors.GRAY, f"    嵌入提供者: {c(Colors.OKBLUE, settings.embedding.provider)}"))
    print(c(Colors.GRAY, f"    地址: {c(Colors.OKBLUE, f'http://{settings.server.host}:{settings.server.port}')}"))
    print()


def main():
    parser = argparse.ArgumentParser(description="Workspace vector store service")
    parser.add_argument("--config", default="config/vectors.yaml", help="Path to the YAML configuration")
    parser.add_argument("--reload", action="store_true", help="Enable auto reload")
    args = parser.parse_args()

    if sys.platform == "win32":
        import colorama
        colorama.init()

    try:
        from config.settings import reload_settings
        settings = reload_settings(args.config)
    except Exception as e:
        print(c(Colors.FAIL, f"✗ 配置加载失败: {e}"))
        print(c(Colors.GRAY, "请检查 config/vectors.yaml 文件格式是否正确"))
        sys.exit(1)

    print_config_info(settings, args.config)

    uvicorn.run(
        "api.main:app",
        host=settings.server.host,
        port=settings.server.port,
        reload=args.reload,
        log_level="warning",
    )


if __name__ == "__main__":
    main()
