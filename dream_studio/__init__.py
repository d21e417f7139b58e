"""
dream-studio

PhotoMaker 画像生成ジョブの投入・進捗推定・キャンセルを行うクライアントパッケージ。
"""

__version__ = "0.1.0"
