"""
Web API 接口
基于 Flask 提供 RESTful API，供编辑器插件调用风格检查与格式化
"""

import logging
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from sql.style_config import ConfigError, StyleConfig, config_from_dict

from .analyzer import StyleAnalyzer

# 设置日志
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class StyleWebAPI:
    """SQL 风格检查 Web API"""

    def __init__(self, config: Optional[StyleConfig] = None):
        self.app = Flask(__name__)
        self.config = config or StyleConfig()
        self.analyzer = StyleAnalyzer(self.config)

        # 启用 CORS 支持编辑器前端跨域访问
        CORS(self.app)

        self._setup_routes()

    def _analyzer_for(self, data: Dict[str, Any]) -> StyleAnalyzer:
        """请求中带 config 时在默认配置之上叠加覆盖项"""
        overrides = data.get("config")
        if not overrides:
            return self.analyzer
        if not isinstance(overrides, dict):
            raise ConfigError("config 必须是JSON对象")
        merged = self.config.to_dict()
        merged.update(overrides)
        return StyleAnalyzer(config_from_dict(merged), log_manager=self.analyzer.log_manager)

    def _read_request(self):
        """解析请求体，返回 (sql, 分析器) 或错误响应"""
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            return None, None, (jsonify({
                'success': False,
                'message': '请求数据格式错误，需要JSON对象'
            }), 400)

        sql = data.get('sql')
        if not isinstance(sql, str):
            return None, None, (jsonify({
                'success': False,
                'message': '缺少字符串字段 sql'
            }), 400)

        try:
            analyzer = self._analyzer_for(data)
        except ConfigError as e:
            return None, None, (jsonify({
                'success': False,
                'message': f'配置无效: {e}',
                'error': 'CONFIG_ERROR'
            }), 400)
        return sql, analyzer, None

    def _setup_routes(self):
        """设置路由"""

        @self.app.route('/api/health', methods=['GET'])
        def health_check():
            """健康检查"""
            return jsonify({
                'status': 'ok',
                'message': 'SQL Style Web API is running',
            })

        @self.app.route('/api/rules', methods=['GET'])
        def list_rules():
            """获取规则列表"""
            return jsonify({
                'success': True,
                'rules': self.analyzer.engine.describe()
            })

        @self.app.route('/api/check', methods=['POST'])
        def check_sql():
            """检查SQL文本"""
            sql, analyzer, error = self._read_request()
            if error:
                return error

            try:
                report = analyzer.analyze_text(sql)
                return jsonify({
                    'success': True,
                    'violations': [v.to_record() for v in report.sorted_violations()],
                    'counts': report.counts(),
                    'exit_code': report.exit_code()
                })
            except Exception as e:
                logger.error(f"风格检查错误: {e}")
                return jsonify({
                    'success': False,
                    'message': f'风格检查失败: {str(e)}',
                    'error': str(e)
                }), 500

        @self.app.route('/api/format', methods=['POST'])
        def format_sql():
            """格式化SQL文本"""
            sql, analyzer, error = self._read_request()
            if error:
                return error

            try:
                formatted = analyzer.format_text(sql)
                return jsonify({
                    'success': True,
                    'formatted': formatted,
                    'changed': formatted != sql
                })
            except Exception as e:
                logger.error(f"格式化错误: {e}")
                return jsonify({
                    'success': False,
                    'message': f'格式化失败: {str(e)}',
                    'error': str(e)
                }), 500

    def run(self, host: str = '127.0.0.1', port: int = 5000, debug: bool = False):
        """启动Web服务器"""
        print(f"🌐 SQL 风格检查 Web API 启动中...")
        print(f"   地址: http://{host}:{port}")
        print(f"   调试模式: {'开启' if debug else '关闭'}")

        try:
            self.app.run(host=host, port=port, debug=debug)
        except KeyboardInterrupt:
            print("\n正在关闭服务器...")
        finally:
            self.analyzer.close()


def create_web_app(config: Optional[StyleConfig] = None) -> Flask:
    """创建Flask应用实例"""
    web_api = StyleWebAPI(config)
    return web_api.app
