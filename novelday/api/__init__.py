"""
API ルーター群

novelday の REST API エンドポイントを定義するルーターモジュール群。

含まれるルーター:
- tasks: キューから呼ばれる Worker エンドポイント（週/月）
- chapters: 保存しない同期プレビュー生成
"""
